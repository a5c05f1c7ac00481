"""Derived Credential Assembler.

Two derivation paths share one credential envelope:

  SELECT      query -> bindings, wrapped as ``queryResults`` in a single
              derived credential
  CONSTRUCT   selected bindings -> constructed statements, grouped by the
              ``subject`` binding, one derived credential per group

Every derived credential gets:

  id              <derived_id_prefix><sha256>, deterministic for its content
  issuanceDate    latest issuanceDate of the sources
  expirationDate  earliest expirationDate of the sources, if any has one
  proof           a placeholder block whose ``derivationMetadata`` records
                  what the credential was derived from

Grouping by a variable literally named ``subject`` is a naming convention,
not SPARQL semantics. A CONSTRUCT that calls its subject anything else
yields one combined credential.

Unlike materialization, derivation is all or nothing: any failure while
assembling aborts the whole call.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

from rdflib import URIRef
from rdflib.term import Identifier

from .canon import canonical_hash, sha256_hex
from .config import get_settings
from .exceptions import (
    ConstructDerivationError,
    CredgraphError,
    DerivationError,
    QueryError,
)
from .materialize import CredentialLike, Materialization, materialize
from .query import binding_from_json, binding_to_json, execute_select, parse_query, term_to_json
from .serialize import statements_to_turtle
from .types import (
    BASE_CREDENTIAL_TYPE,
    CREDENTIALS_V1,
    DERIVED_CONTEXT_V1,
    Credential,
    DerivationTemplate,
    QueryKind,
    Statement,
    ValidityPeriod,
    as_document,
    credential_id,
    parse_datetime,
)
from .validation import validate_credential

logger = logging.getLogger(__name__)

SUBJECT_VARIABLE = "subject"
DERIVED_CREDENTIAL_TYPE = "DerivedCredential"
DERIVED_SUBJECT_TYPE = "DerivedCredentialSubject"
DERIVED_PROOF_TYPE = "DerivedCredentialProof2024"


# ---------------------------------------------------------------------------
# Validity period
# ---------------------------------------------------------------------------

def validity_period(sources: Sequence[CredentialLike]) -> ValidityPeriod:
    """Intersect the validity windows of the sources.

    validFrom is the latest issuanceDate, validUntil the earliest defined
    expirationDate. The original date strings are kept.
    """
    if not sources:
        raise DerivationError("At least one source credential is required")

    latest: tuple[datetime, str] | None = None
    earliest: tuple[datetime, str] | None = None
    for source in sources:
        document = as_document(source)
        issued = document.get("issuanceDate")
        when = parse_datetime(issued, "issuanceDate")
        if latest is None or when > latest[0]:
            latest = (when, issued)

        expires = document.get("expirationDate")
        if expires:
            when = parse_datetime(expires, "expirationDate")
            if earliest is None or when < earliest[0]:
                earliest = (when, expires)

    return ValidityPeriod(
        valid_from=latest[1],
        valid_until=earliest[1] if earliest else None,
    )


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _as_template(template: DerivationTemplate | Mapping[str, Any] | None) -> DerivationTemplate:
    if template is None:
        return DerivationTemplate()
    if isinstance(template, DerivationTemplate):
        return template
    types = template.get("types", template.get("type", DerivationTemplate.types))
    return DerivationTemplate(
        types=tuple([types] if isinstance(types, str) else types),
        issuer=template.get("issuer"),
        name=template.get("name"),
        description=template.get("description"),
    )


def _types(template: DerivationTemplate) -> list[str]:
    out = [BASE_CREDENTIAL_TYPE, DERIVED_CREDENTIAL_TYPE]
    for t in template.types:
        if t not in out:
            out.append(t)
    return out


def _envelope(
    cred_id: str,
    template: DerivationTemplate,
    validity: ValidityPeriod,
    subject: dict[str, Any],
    metadata: dict[str, Any],
    created: str,
) -> dict[str, Any]:
    issuer = template.issuer or get_settings().derived_issuer
    document: dict[str, Any] = {
        "@context": [CREDENTIALS_V1, DERIVED_CONTEXT_V1],
        "id": cred_id,
        "type": _types(template),
        "issuer": issuer,
        "issuanceDate": validity.valid_from,
    }
    if validity.valid_until:
        document["expirationDate"] = validity.valid_until
    if template.name:
        document["name"] = template.name
    if template.description:
        document["description"] = template.description
    document["credentialSubject"] = subject
    # Placeholder until real signing exists
    document["proof"] = {
        "type": DERIVED_PROOF_TYPE,
        "created": created,
        "verificationMethod": f"{issuer}#keys-1",
        "proofPurpose": "assertionMethod",
        "proofValue": f"unsigned-derived-proof-{cred_id.rsplit(':', 1)[-1]}",
        "derivationMetadata": metadata,
    }
    return document


def _finish(document: dict[str, Any]) -> Credential:
    try:
        return validate_credential(document)
    except CredgraphError as exc:
        raise DerivationError(
            f"Derived credential failed validation: {exc.message}",
            details={"reason": exc.to_dict()},
        ) from exc


# ---------------------------------------------------------------------------
# SELECT path
# ---------------------------------------------------------------------------

def derive_credential(
    query_text: str,
    source_credentials: Sequence[CredentialLike],
    template: DerivationTemplate | Mapping[str, Any] | None = None,
    loader: Any = None,
    materialization: Materialization | None = None,
) -> Credential:
    """Run a SELECT over the sources and wrap its bindings in one credential.

    ``materialization`` is reused when the caller already converted the
    sources.

    Query errors (``SparqlError``, ``UnsupportedQueryType``) propagate
    unchanged; anything else that goes wrong is a ``DerivationError``.
    """
    algebra = parse_query(query_text)
    if algebra.kind is not QueryKind.SELECT:
        raise DerivationError(
            "Only SELECT queries derive a single credential; "
            "use derive_credentials_from_construct for CONSTRUCT",
            details={"query_type": algebra.kind.name},
        )

    template = _as_template(template)
    source_ids = [credential_id(c) for c in source_credentials]

    try:
        validity = validity_period(source_credentials)
        if materialization is None:
            materialization = materialize(source_credentials, loader)
        statements = materialization.statements
        rows = [binding_to_json(row) for row in execute_select(algebra, statements)]
    except QueryError:
        raise
    except CredgraphError as exc:
        raise DerivationError(
            f"Failed to create derived credential: {exc.message}",
            details={"reason": exc.to_dict()},
        ) from exc

    content = json.dumps(
        {"query": query_text, "derivedFrom": source_ids, "queryResults": rows},
        sort_keys=True,
        separators=(",", ":"),
    )
    cred_id = f"{get_settings().derived_id_prefix}{sha256_hex(content)}"
    created = _utcnow()

    subject = {
        "id": f"{cred_id}#subject",
        "type": DERIVED_SUBJECT_TYPE,
        "derivedFrom": source_ids,
        "sparqlQuery": query_text,
        "queryResults": rows,
    }
    metadata = {
        "sourceCredentials": len(source_ids),
        "queryHash": sha256_hex(query_text),
        "derivationTimestamp": created,
    }
    credential = _finish(_envelope(cred_id, template, validity, subject, metadata, created))
    logger.info("Derived credential %s from %d rows", cred_id, len(rows))
    return credential


# ---------------------------------------------------------------------------
# CONSTRUCT path
# ---------------------------------------------------------------------------

def subject_groups(
    statements: Sequence[Statement],
    bindings: Iterable[Mapping[str, Any]],
) -> list[tuple[Identifier | None, list[Statement]]]:
    """Split statements by the ``subject`` bindings.

    Returns (subject, statements) pairs in first-seen binding order, each
    holding only the statements whose subject is that term. Without any
    ``subject`` binding there is one group keyed by None holding every
    statement. Empty groups are left out.
    """
    subjects: dict[Identifier, None] = {}
    for raw in bindings:
        value = binding_from_json(raw).get(SUBJECT_VARIABLE)
        if value is not None:
            subjects.setdefault(value, None)

    if not subjects:
        return [(None, list(statements))] if statements else []

    groups = []
    for subject in subjects:
        members = [st for st in statements if st[0] == subject]
        if members:
            groups.append((subject, members))
    return groups


def derive_credentials_from_construct(
    statements: Sequence[Statement],
    selected_bindings: Sequence[Mapping[str, Any]],
    source_credentials: Sequence[CredentialLike],
    template: DerivationTemplate | Mapping[str, Any] | None = None,
) -> list[Credential]:
    """Assemble one derived credential per ``subject`` group.

    Raises:
        ConstructDerivationError: nothing to emit, or assembly failed.
    """
    template = _as_template(template)
    statements = list(statements)
    groups = subject_groups(statements, selected_bindings)
    if not groups:
        raise ConstructDerivationError(
            "No constructed statements to derive credentials from",
            details={"statements": len(statements), "bindings": len(selected_bindings)},
        )

    settings = get_settings()
    try:
        validity = validity_period(source_credentials)
    except CredgraphError as exc:
        raise ConstructDerivationError(exc.message, details={"reason": exc.to_dict()}) from exc

    source_ids = [credential_id(c) for c in source_credentials]
    created = _utcnow()
    derived = []

    for subject, members in groups:
        try:
            dataset_hash = canonical_hash(members, settings.canon_algorithm)
            cred_id = f"{settings.derived_id_prefix}{dataset_hash}"
            rdf_data = statements_to_turtle(members)
            subject_id = str(subject) if isinstance(subject, URIRef) else f"{cred_id}#subject"
            document = _envelope(
                cred_id,
                template,
                validity,
                {
                    "id": subject_id,
                    "type": DERIVED_SUBJECT_TYPE,
                    "derivedFrom": source_ids,
                    "rdfData": rdf_data,
                    "statementCount": len(members),
                },
                {
                    "sourceCredentials": len(source_ids),
                    "datasetHash": dataset_hash,
                    "subjectBinding": term_to_json(subject) if subject is not None else None,
                    "derivationTimestamp": created,
                    "canonicalizationAlgorithm": settings.canon_algorithm,
                },
                created,
            )
            credential = _finish(document)
        except CredgraphError as exc:
            raise ConstructDerivationError(
                f"Failed to assemble derived credential: {exc.message}",
                details={"subject": str(subject) if subject is not None else None,
                         "reason": exc.to_dict()},
            ) from exc
        logger.info(
            "Derived credential %s for subject %s (%d statements)",
            cred_id, subject, len(members),
        )
        derived.append(credential)

    return derived
