"""Core value types shared by the pipeline.

  Credential      immutable wrapper over a JSON-LD credential document
  Statement       an (s, p, o) triple of rdflib terms in the default graph
  Binding         one query result row: variable name -> bound term
  Algebra         a parsed query tagged SELECT / CONSTRUCT / unsupported
  ValidityPeriod  conservative intersection of source validity windows
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Sequence, Tuple, Union

from rdflib.term import BNode, Identifier, Literal, URIRef, Variable

from .exceptions import InvalidDate

# ---------------------------------------------------------------------------
# Vocabulary constants
# ---------------------------------------------------------------------------

CREDENTIALS_V1 = "https://www.w3.org/2018/credentials/v1"
DERIVED_CONTEXT_V1 = "https://w3id.org/credentials/derived/v1"
BASE_CREDENTIAL_TYPE = "VerifiableCredential"

Term = Union[URIRef, Literal, BNode]
Statement = Tuple[Identifier, Identifier, Identifier]
TemplateStatement = Tuple[Union[Identifier, Variable], ...]
Binding = Mapping[str, Identifier]


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def parse_datetime(value: Any, field_name: str = "date") -> datetime:
    """Parse an ISO-8601 date or date-time; naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidDate(
            f"Invalid date format for {field_name}: {value!r}",
            details={"field": field_name, "value": value},
        )
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidDate(
            f"Invalid date format for {field_name}: {value!r}",
            details={"field": field_name, "value": value},
        ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Credential
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Credential:
    """A verifiable credential document.

    The wrapped document is copied on the way in and on the way out, so a
    Credential can never be changed after validation. Transformations
    produce new Credential values.
    """
    document: dict[str, Any]

    @classmethod
    def from_dict(cls, document: Mapping[str, Any]) -> Credential:
        return cls(document=copy.deepcopy(dict(document)))

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.document)

    @property
    def id(self) -> str:
        return str(self.document.get("id", ""))

    @property
    def contexts(self) -> list[Any]:
        ctx = self.document.get("@context", [])
        return list(ctx) if isinstance(ctx, list) else [ctx]

    @property
    def types(self) -> list[str]:
        value = self.document.get("type", [])
        return list(value) if isinstance(value, list) else [value]

    @property
    def issuer_id(self) -> str:
        issuer = self.document.get("issuer")
        if isinstance(issuer, Mapping):
            return str(issuer.get("id", ""))
        return str(issuer or "")

    @property
    def issuance_date(self) -> str:
        return self.document.get("issuanceDate", "")

    @property
    def expiration_date(self) -> str | None:
        return self.document.get("expirationDate")

    @property
    def subject(self) -> dict[str, Any]:
        subject = self.document.get("credentialSubject", {})
        return copy.deepcopy(subject) if isinstance(subject, Mapping) else {}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Credential):
            return NotImplemented
        return self.document == other.document

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Credential({self.id})"


def as_document(credential: Credential | Mapping[str, Any]) -> dict[str, Any]:
    """Return a private copy of the JSON-LD document behind ``credential``."""
    if isinstance(credential, Credential):
        return credential.to_dict()
    return copy.deepcopy(dict(credential))


def credential_id(credential: Credential | Mapping[str, Any]) -> str:
    if isinstance(credential, Credential):
        return credential.id
    return str(credential.get("id", ""))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class QueryKind(Enum):
    """Root operation of a parsed query."""
    SELECT = "project"
    CONSTRUCT = "construct"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class Algebra:
    """A parsed and classified query.

    SELECT carries its projected variable names. CONSTRUCT carries its
    template (ordered statement patterns whose terms may be variables) and
    its WHERE pattern as an rdflib algebra node.
    """
    kind: QueryKind
    text: str
    variables: tuple[str, ...] = ()
    template: tuple[TemplateStatement, ...] = ()
    where: Any = field(default=None, compare=False, repr=False)
    query: Any = field(default=None, compare=False, repr=False)

    def __repr__(self) -> str:
        if self.kind is QueryKind.CONSTRUCT:
            return f"Algebra(construct, {len(self.template)} template statements)"
        return f"Algebra({self.kind.value}, {list(self.variables)})"


# ---------------------------------------------------------------------------
# Validity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidityPeriod:
    """(validFrom, validUntil?) as the source strings they were taken from."""
    valid_from: str
    valid_until: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"validFrom": self.valid_from, "validUntil": self.valid_until}

    def __repr__(self) -> str:
        return f"ValidityPeriod({self.valid_from} .. {self.valid_until or 'open'})"


# ---------------------------------------------------------------------------
# Derivation template
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DerivationTemplate:
    """Caller-supplied shape of a derived credential."""
    types: Sequence[str] = ("DerivedCredential",)
    issuer: str | None = None
    name: str | None = None
    description: str | None = None
