"""Tests for credential document validation and SHACL conformance.

Document checks are exercised field by field in both pass and fail cases;
the SHACL check runs over materialized credentials via pySHACL.
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import json

import pytest
from rdflib import Literal, Namespace, RDF
from rdflib.namespace import SH

from credgraph.exceptions import (
    InvalidContext,
    InvalidDate,
    InvalidFormat,
    InvalidType,
    MissingField,
)
from credgraph.types import CREDENTIALS_V1, Credential
from credgraph.validation import (
    check_conformance,
    credential_shapes,
    parse_credential,
    validate_credential,
)

CRED = Namespace("https://www.w3.org/2018/credentials#")


def _valid() -> dict:
    return {
        "@context": [CREDENTIALS_V1, {"@vocab": "http://schema.org/"}],
        "id": "https://example.org/credentials/1",
        "type": ["VerifiableCredential", "ProfileCredential"],
        "issuer": "did:example:issuer",
        "issuanceDate": "2020-01-01T00:00:00Z",
        "expirationDate": "2030-01-01T00:00:00Z",
        "credentialSubject": {"id": "did:example:alice", "name": "Alice"},
    }


# ---------------------------------------------------------------------------
# Document shape
# ---------------------------------------------------------------------------

class TestValidateCredential:
    def test_valid(self):
        credential = validate_credential(_valid())
        assert isinstance(credential, Credential)
        assert credential.id == "https://example.org/credentials/1"
        assert credential.types == ["VerifiableCredential", "ProfileCredential"]
        assert credential.issuer_id == "did:example:issuer"

    def test_issuer_object(self):
        doc = _valid()
        doc["issuer"] = {"id": "did:example:issuer", "name": "Issuer"}
        assert validate_credential(doc).issuer_id == "did:example:issuer"

    def test_issuer_object_without_id(self):
        doc = _valid()
        doc["issuer"] = {"name": "Issuer"}
        with pytest.raises(MissingField):
            validate_credential(doc)

    def test_not_an_object(self):
        with pytest.raises(InvalidFormat):
            validate_credential(["not", "an", "object"])

    @pytest.mark.parametrize("field", [
        "@context", "id", "type", "issuer", "issuanceDate", "credentialSubject",
    ])
    def test_missing_field(self, field):
        doc = _valid()
        del doc[field]
        with pytest.raises(MissingField) as info:
            validate_credential(doc)
        assert info.value.field_name == field
        assert info.value.details == {"field": field}

    def test_context_must_be_string_or_list(self):
        doc = _valid()
        doc["@context"] = 42
        with pytest.raises(InvalidContext):
            validate_credential(doc)

    def test_type_must_be_list(self):
        doc = _valid()
        doc["type"] = "VerifiableCredential"
        with pytest.raises(InvalidType):
            validate_credential(doc)

    def test_type_must_include_base_type(self):
        doc = _valid()
        doc["type"] = ["ProfileCredential"]
        with pytest.raises(InvalidType):
            validate_credential(doc)

    def test_bad_issuance_date(self):
        doc = _valid()
        doc["issuanceDate"] = "yesterday"
        with pytest.raises(InvalidDate):
            validate_credential(doc)

    def test_bad_expiration_date(self):
        doc = _valid()
        doc["expirationDate"] = "2030-13-45"
        with pytest.raises(InvalidDate):
            validate_credential(doc)

    def test_date_only_accepted(self):
        doc = _valid()
        doc["issuanceDate"] = "2020-01-01"
        validate_credential(doc)

    def test_error_codes(self):
        doc = _valid()
        del doc["id"]
        with pytest.raises(MissingField) as info:
            validate_credential(doc)
        assert info.value.to_dict()["code"] == "MISSING_FIELD"


class TestParseCredential:
    def test_valid_json(self):
        credential = parse_credential(json.dumps(_valid()))
        assert credential == Credential.from_dict(_valid())

    def test_bad_json(self):
        with pytest.raises(InvalidFormat) as info:
            parse_credential("{not json")
        assert info.value.code == "INVALID_JSON"


class TestCredentialImmutability:
    def test_input_copied(self):
        doc = _valid()
        credential = validate_credential(doc)
        doc["id"] = "changed"
        assert credential.id == "https://example.org/credentials/1"

    def test_output_copied(self):
        credential = validate_credential(_valid())
        subject = credential.subject
        subject["name"] = "Mallory"
        assert credential.subject["name"] == "Alice"


# ---------------------------------------------------------------------------
# SHACL
# ---------------------------------------------------------------------------

class TestShapes:
    def test_node_shape_targets_credentials(self):
        sg = credential_shapes()
        shapes = list(sg.subjects(RDF.type, SH.NodeShape))
        assert len(shapes) == 1
        assert (shapes[0], SH.targetClass, CRED.VerifiableCredential) in sg

    def test_issuer_cardinality(self):
        sg = credential_shapes()
        issuer = next(sg.subjects(SH.path, CRED.issuer))
        assert (issuer, SH.minCount, Literal(1)) in sg
        assert (issuer, SH.maxCount, Literal(1)) in sg
        assert (issuer, SH.nodeKind, SH.IRI) in sg


class TestConformance:
    def test_valid_conforms(self):
        result = check_conformance([_valid()])
        assert result.conforms, result.summary()
        assert result.violations == []
        assert "CONFORMS" in result.summary()

    def test_two_issuers_violate(self):
        doc = _valid()
        doc["issuer"] = ["did:example:one", "did:example:two"]
        result = check_conformance([doc])
        assert not result.conforms
        assert any(v.path == str(CRED.issuer) for v in result.violations)

    def test_missing_subject_violates(self):
        doc = _valid()
        del doc["credentialSubject"]
        result = check_conformance([doc])
        assert not result.conforms
        assert any(v.path == str(CRED.credentialSubject) for v in result.violations)
        assert "DOES NOT CONFORM" in result.summary()

    def test_unmaterializable_reported_as_skipped(self):
        bad = _valid()
        bad["id"] = "https://example.org/credentials/bad"
        bad["@context"] = [CREDENTIALS_V1, {"proof": "http://example.org/malicious#proof"}]
        result = check_conformance([bad, _valid()])
        assert result.conforms
        assert result.skipped == ["https://example.org/credentials/bad"]
        assert [v.severity for v in result.violations] == ["Skipped"]
        assert result.checked == 2
        assert "1/2 credentials checked" in result.summary()

    def test_findings_grouped_by_credential(self):
        doc = _valid()
        doc["issuer"] = ["did:example:one", "did:example:two"]
        result = check_conformance([doc])
        grouped = result.by_credential()
        assert list(grouped) == ["https://example.org/credentials/1"]
        assert all(v.severity == "Violation" for v in grouped["https://example.org/credentials/1"])
        summary = result.summary()
        assert "  https://example.org/credentials/1" in summary
        assert "[Violation] issuer:" in summary
