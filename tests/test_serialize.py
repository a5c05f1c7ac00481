"""Tests for Turtle rendering and the fallback serializer chain."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import logging

import pytest
from rdflib import Graph, Literal, Namespace, RDF, URIRef, XSD
from rdflib.compare import isomorphic

from credgraph import serialize
from credgraph.exceptions import SerializationError
from credgraph.materialize import materialize
from credgraph.serialize import (
    combined_turtle,
    fallback_turtle,
    first_success,
    statements_to_turtle,
    to_turtle,
)
from credgraph.types import CREDENTIALS_V1, Credential
from credgraph.vocabularies import active_vocabularies, predicate_table

CRED = Namespace("https://www.w3.org/2018/credentials#")
SCHEMA = Namespace("http://schema.org/")
CITIZENSHIP = Namespace("https://w3id.org/citizenship#")
CREDEX = Namespace("https://www.w3.org/2018/credentials/examples#")
SEC = Namespace("https://w3id.org/security#")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _credential(**subject) -> dict:
    return {
        "@context": [CREDENTIALS_V1, {"@vocab": "http://schema.org/"}],
        "id": "https://example.org/credentials/1",
        "type": ["VerifiableCredential", "ProfileCredential"],
        "issuer": {"id": "https://issuer.example.org", "name": "Example Issuer"},
        "issuanceDate": "2020-01-01T00:00:00Z",
        "credentialSubject": {"id": "did:example:alice", "name": "Alice", **subject},
    }


def _malformed() -> dict:
    doc = _credential()
    doc["@context"] = [CREDENTIALS_V1, {"proof": "http://example.org/malicious#proof"}]
    return doc


def _parse(text: str) -> Graph:
    g = Graph()
    g.parse(data=text, format="turtle")
    return g


# ---------------------------------------------------------------------------
# Combinator
# ---------------------------------------------------------------------------

class TestFirstSuccess:
    def test_first_result_wins(self):
        calls = []

        def one():
            calls.append("one")
            return "first"

        def two():
            calls.append("two")
            return "second"

        assert first_success([("one", one), ("two", two)]) == "first"
        assert calls == ["one"]

    def test_falls_through_failures(self, caplog):
        caplog.set_level(logging.WARNING, logger="credgraph.serialize")

        def broken():
            raise ValueError("nope")

        assert first_success([("broken", broken), ("ok", lambda: "fine")]) == "fine"
        assert "broken" in caplog.text

    def test_all_fail(self):
        def broken():
            raise ValueError("nope")

        with pytest.raises(SerializationError) as info:
            first_success([("a", broken), ("b", broken)])
        assert len(info.value.details["errors"]) == 2

    def test_arguments_passed(self):
        assert first_success([("echo", lambda x: x * 2)], 21) == 42


# ---------------------------------------------------------------------------
# Primary path
# ---------------------------------------------------------------------------

class TestToTurtle:
    def test_round_trip_isomorphic(self):
        credential = _credential(age=30)
        expected = materialize([credential]).graph()
        assert isomorphic(_parse(to_turtle(credential)), expected)

    def test_round_trip_with_nested_object(self):
        credential = _credential(address={"streetAddress": "1 Main St", "addressLocality": "Springfield"})
        expected = materialize([credential]).graph()
        assert isomorphic(_parse(to_turtle(credential)), expected)

    def test_credential_value(self):
        credential = Credential.from_dict(_credential())
        assert isomorphic(_parse(to_turtle(credential)), materialize([credential]).graph())

    def test_uses_prefixes(self):
        text = to_turtle(_credential())
        assert "@prefix cred:" in text or "PREFIX cred:" in text

    def test_malformed_falls_back(self, caplog):
        caplog.set_level(logging.WARNING, logger="credgraph.serialize")
        text = to_turtle(_malformed())

        g = _parse(text)
        cred = URIRef("https://example.org/credentials/1")
        assert (cred, RDF.type, CRED.VerifiableCredential) in g
        assert "pretty-turtle" in caplog.text

    def test_primary_failure_uses_field_walk(self, monkeypatch):
        def broken(credential, loader=None):
            raise RuntimeError("expansion unavailable")

        monkeypatch.setattr(serialize, "credential_statements", broken)
        text = to_turtle(_credential())
        assert text.startswith("@prefix cred:")
        assert "# Credential Subject" in text

    def test_never_raises(self, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("everything is broken")

        monkeypatch.setattr(serialize, "credential_statements", broken)
        monkeypatch.setattr(serialize, "_walk", broken)
        text = to_turtle(_credential())
        assert text.startswith("# Unable to serialize")

    @pytest.mark.parametrize("value", [["not", "a", "credential"], "text", 42, None])
    def test_non_object_input(self, value):
        text = to_turtle(value)
        assert text.startswith("# Unable to serialize credential <")
        assert fallback_turtle(value).startswith("# Unable to serialize credential <")


class TestStatementsToTurtle:
    def test_parses_back(self):
        statements = [
            (URIRef("did:example:alice"), SCHEMA.name, Literal("Alice")),
            (URIRef("did:example:alice"), SCHEMA.age, Literal("30", datatype=XSD.integer)),
        ]
        g = _parse(statements_to_turtle(statements))
        assert set(g) == set(statements)

    def test_combined(self):
        other = _credential()
        other["id"] = "https://example.org/credentials/2"
        other["credentialSubject"] = {"id": "did:example:bob", "name": "Bob"}

        g = _parse(combined_turtle([_credential(), other, _malformed()]))
        names = set(g.objects(None, SCHEMA.name))
        assert Literal("Alice") in names
        assert Literal("Bob") in names

    def test_combined_empty(self):
        assert combined_turtle([]).startswith("#")


# ---------------------------------------------------------------------------
# Field-walk writer
# ---------------------------------------------------------------------------

class TestFallbackTurtle:
    def test_envelope(self):
        g = _parse(fallback_turtle(_credential()))
        cred = URIRef("https://example.org/credentials/1")
        alice = URIRef("did:example:alice")

        assert (cred, RDF.type, CRED.VerifiableCredential) in g
        assert (cred, RDF.type, SCHEMA.ProfileCredential) in g
        assert (cred, CRED.issuer, URIRef("https://issuer.example.org")) in g
        assert (cred, CRED.issuanceDate,
                Literal("2020-01-01T00:00:00Z", datatype=XSD.dateTime)) in g
        assert (cred, CRED.credentialSubject, alice) in g
        assert (alice, SCHEMA.name, Literal("Alice")) in g
        assert (URIRef("https://issuer.example.org"), SCHEMA.name, Literal("Example Issuer")) in g

    def test_uri_values_become_iris(self):
        g = _parse(fallback_turtle(_credential(
            homepage="https://alice.example.org", sameAs="did:example:alice2", note="plain text",
        )))
        alice = URIRef("did:example:alice")
        assert (alice, SCHEMA.homepage, URIRef("https://alice.example.org")) in g
        assert (alice, SCHEMA.sameAs, URIRef("did:example:alice2")) in g
        assert (alice, SCHEMA.note, Literal("plain text")) in g

    def test_context_activates_vocabulary(self):
        doc = _credential(givenName="Alice", lprCategory="C09")
        doc["@context"] = [CREDENTIALS_V1, "https://w3id.org/citizenship/v1"]
        g = _parse(fallback_turtle(doc))
        alice = URIRef("did:example:alice")
        assert (alice, CITIZENSHIP.givenName, Literal("Alice")) in g
        assert (alice, CITIZENSHIP.lprCategory, Literal("C09")) in g
        assert (alice, SCHEMA.name, Literal("Alice")) in g

    def test_default_mapping_without_vocabulary(self):
        g = _parse(fallback_turtle(_credential(givenName="Alice")))
        assert (URIRef("did:example:alice"), SCHEMA.givenName, Literal("Alice")) in g

    def test_nested_object_is_anonymous_node(self):
        doc = _credential(degree={"type": "BachelorDegree", "name": "Bachelor of Science"})
        doc["@context"] = [CREDENTIALS_V1, "https://www.w3.org/2018/credentials/examples/v1"]
        g = _parse(fallback_turtle(doc))

        degree = g.value(URIRef("did:example:alice"), CREDEX.degree)
        assert degree is not None
        assert (degree, RDF.type, SCHEMA.BachelorDegree) in g
        assert (degree, SCHEMA.name, Literal("Bachelor of Science")) in g

    def test_typed_scalars(self):
        g = _parse(fallback_turtle(_credential(age=30, verified=True)))
        alice = URIRef("did:example:alice")
        assert g.value(alice, SCHEMA.age) == Literal(30)
        assert g.value(alice, SCHEMA.verified) == Literal(True)

    def test_escaping(self):
        g = _parse(fallback_turtle(_credential(motto='He said "hi"\nthen left')))
        assert g.value(URIRef("did:example:alice"), SCHEMA.motto) == Literal('He said "hi"\nthen left')

    def test_odd_keys(self):
        g = _parse(fallback_turtle(_credential(**{"favourite colour": "blue"})))
        assert Literal("blue") in set(g.objects(URIRef("did:example:alice"), None))

    def test_subject_without_id(self):
        doc = _credential()
        del doc["credentialSubject"]["id"]
        text = fallback_turtle(doc)
        assert "_:subject" in text
        _parse(text)

    def test_proof_block(self):
        doc = _credential()
        doc["proof"] = {
            "type": "Ed25519Signature2018",
            "created": "2020-01-02T00:00:00Z",
            "verificationMethod": "https://issuer.example.org#key-1",
            "proofPurpose": "assertionMethod",
            "jws": "abc..def",
        }
        g = _parse(fallback_turtle(doc))
        proof = g.value(URIRef("https://example.org/credentials/1"), SEC.proof)
        assert (proof, RDF.type, SEC.Ed25519Signature2018) in g
        assert (proof, SEC.jws, Literal("abc..def")) in g
        assert (proof, SEC.proofPurpose, SEC.assertionMethod) in g

    def test_sparse_document(self):
        text = fallback_turtle({"type": 5, "credentialSubject": "not an object"})
        g = _parse(text)
        assert (None, RDF.type, CRED.VerifiableCredential) in g


class TestVocabularies:
    def test_marker_matching(self):
        names = [v.prefix for v in active_vocabularies([
            CREDENTIALS_V1, "https://w3id.org/vaccination/v1",
        ])]
        assert names == ["vaccination"]

    def test_vocabulary_overrides_default(self):
        table = predicate_table(["https://w3id.org/citizenship/v1"])
        assert table["givenName"] == "citizenship:givenName"
        assert table["name"] == "schema:name"

    def test_inline_contexts_ignored(self):
        assert active_vocabularies([{"citizenship": "https://w3id.org/citizenship#"}]) == []
