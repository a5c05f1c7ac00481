"""Tests for the RDF Materializer."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import logging

import pytest
from rdflib import Literal, Namespace, RDF, URIRef, XSD

from credgraph.exceptions import InvalidJsonLdContext
from credgraph.materialize import (
    compact_credential,
    credential_statements,
    expand_credential,
    materialize,
)
from credgraph.query import execute_query
from credgraph.types import CREDENTIALS_V1, Credential

CRED = Namespace("https://www.w3.org/2018/credentials#")
SCHEMA = Namespace("http://schema.org/")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _credential(
    cred_id="https://example.org/credentials/1",
    subject_id="did:example:alice",
    name="Alice",
    **extra,
) -> dict:
    doc = {
        "@context": [CREDENTIALS_V1, {"@vocab": "http://schema.org/"}],
        "id": cred_id,
        "type": ["VerifiableCredential"],
        "issuer": "did:example:issuer",
        "issuanceDate": "2020-01-01T00:00:00Z",
        "credentialSubject": {"id": subject_id, "name": name},
    }
    doc.update(extra)
    return doc


def _malformed() -> dict:
    """Redefines the protected ``proof`` term."""
    doc = _credential(cred_id="https://example.org/credentials/bad")
    doc["@context"] = [CREDENTIALS_V1, {"proof": "http://example.org/malicious#proof"}]
    return doc


# ---------------------------------------------------------------------------
# Single credential
# ---------------------------------------------------------------------------

class TestCredentialStatements:
    def test_envelope_statements(self):
        statements = credential_statements(_credential())
        cred = URIRef("https://example.org/credentials/1")
        alice = URIRef("did:example:alice")
        assert (cred, RDF.type, CRED.VerifiableCredential) in statements
        assert (cred, CRED.issuer, URIRef("did:example:issuer")) in statements
        assert (cred, CRED.credentialSubject, alice) in statements
        assert (alice, SCHEMA.name, Literal("Alice")) in statements

    def test_issuance_date_is_typed(self):
        statements = credential_statements(_credential())
        dates = [o for _, p, o in statements if p == CRED.issuanceDate]
        assert len(dates) == 1
        assert dates[0].datatype == XSD.dateTime

    def test_accepts_credential_value(self):
        as_dict = credential_statements(_credential())
        as_value = credential_statements(Credential.from_dict(_credential()))
        assert set(as_dict) == set(as_value)

    def test_protected_term_redefinition(self):
        with pytest.raises(InvalidJsonLdContext):
            credential_statements(_malformed())

    def test_unknown_context_without_remote_loading(self):
        doc = _credential()
        doc["@context"] = [CREDENTIALS_V1, "https://example.org/unknown-context/v1"]
        with pytest.raises(InvalidJsonLdContext):
            credential_statements(doc)


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

class TestMaterialize:
    def test_empty_input(self):
        result = materialize([])
        assert result.statements == []
        assert result.usable == 0
        assert result.failures == []

    def test_empty_input_query_has_no_rows(self):
        assert execute_query("SELECT * WHERE { ?s ?p ?o }", []) == []

    def test_duplicates_collapse(self):
        once = materialize([_credential()])
        twice = materialize([_credential(), _credential()])
        assert twice.usable == once.usable
        assert twice.total == 2 * once.total

    def test_union_of_credentials(self):
        result = materialize([
            _credential(),
            _credential(cred_id="https://example.org/credentials/2",
                        subject_id="did:example:bob", name="Bob"),
        ])
        names = {o for _, p, o in result.statements if p == SCHEMA.name}
        assert names == {Literal("Alice"), Literal("Bob")}

    def test_proof_graph_excluded(self):
        doc = _credential(proof={
            "type": "Ed25519Signature2018",
            "created": "2020-01-01T00:00:00Z",
            "proofPurpose": "assertionMethod",
            "verificationMethod": "did:example:issuer#key-1",
            "jws": "eyJhbGciOiJFZERTQSJ9..signature",
        })
        result = materialize([doc])
        objects = {o for _, _, o in result.statements}
        assert Literal("eyJhbGciOiJFZERTQSJ9..signature") not in objects
        assert result.total > result.usable

    def test_malformed_is_skipped_not_fatal(self, caplog):
        caplog.set_level(logging.WARNING, logger="credgraph.materialize")
        result = materialize([_malformed(), _credential()])

        assert result.credential_count == 2
        assert result.usable_credentials == 1
        assert len(result.failures) == 1
        assert result.failures[0].credential_id == "https://example.org/credentials/bad"
        assert result.failures[0].error.code == "INVALID_JSONLD_CONTEXT"
        assert set(result.statements) == set(credential_statements(_credential()))
        assert "Skipping credential" in caplog.text

    def test_all_malformed_yields_empty_set(self):
        result = materialize([_malformed()])
        assert result.statements == []
        assert len(result.failures) == 1

    def test_summary_reports_counts(self):
        result = materialize([_malformed(), _credential()])
        text = result.summary()
        assert "1/2 credentials" in text
        assert "skipped https://example.org/credentials/bad" in text

    def test_graph(self):
        result = materialize([_credential()])
        assert len(result.graph()) == result.usable


# ---------------------------------------------------------------------------
# Expansion / compaction
# ---------------------------------------------------------------------------

class TestCompaction:
    def test_expand_then_compact(self):
        expanded = expand_credential(_credential())
        compacted = compact_credential(expanded)
        assert compacted["id"] == "https://example.org/credentials/1"
        assert "VerifiableCredential" in str(compacted["type"])

    def test_expand_malformed(self):
        with pytest.raises(InvalidJsonLdContext):
            expand_credential(_malformed())
