"""Exception hierarchy for the credential graph pipeline.

Every failure carries a stable ``code`` so that a UI or CLI layer can
branch on it without parsing messages:

  Credential shape     INVALID_FORMAT, INVALID_JSON, MISSING_FIELD,
                       INVALID_CONTEXT, INVALID_TYPE, INVALID_DATE
  Materialization      INVALID_JSONLD_CONTEXT, MATERIALIZATION_ERROR
  Query                SPARQL_ERROR, UNSUPPORTED_QUERY_TYPE
  Derivation           DERIVATION_ERROR, CONSTRUCT_DERIVATION_ERROR
  Integrity / output   CANONICALIZATION_ERROR, SERIALIZATION_ERROR

Query errors originate from text the user wrote, so their messages are
preserved verbatim from the SPARQL engine.
"""

from __future__ import annotations

from typing import Any


class CredgraphError(Exception):
    """Base exception for all credential graph errors."""

    code: str = "CREDGRAPH_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code}: {self.message})"


# ---------------------------------------------------------------------------
# Credential documents
# ---------------------------------------------------------------------------

class CredentialError(CredgraphError):
    """A credential document is unusable."""
    code = "CREDENTIAL_ERROR"


class InvalidFormat(CredentialError):
    code = "INVALID_FORMAT"


class MissingField(CredentialError):
    code = "MISSING_FIELD"

    def __init__(self, field_name: str) -> None:
        super().__init__(
            f"Missing required field: {field_name}",
            details={"field": field_name},
        )
        self.field_name = field_name


class InvalidContext(CredentialError):
    code = "INVALID_CONTEXT"


class InvalidType(CredentialError):
    code = "INVALID_TYPE"


class InvalidDate(CredentialError):
    code = "INVALID_DATE"


class InvalidJsonLdContext(CredentialError):
    """A context cannot be applied, e.g. it redefines a protected term."""
    code = "INVALID_JSONLD_CONTEXT"


class MaterializationError(CredentialError):
    """Any other failure converting one credential into statements."""
    code = "MATERIALIZATION_ERROR"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class QueryError(CredgraphError):
    code = "QUERY_ERROR"


class SparqlError(QueryError):
    """Parse or evaluation failure; message preserved from the engine."""
    code = "SPARQL_ERROR"


class UnsupportedQueryType(QueryError):
    """The query parsed, but is not a SELECT or CONSTRUCT."""
    code = "UNSUPPORTED_QUERY_TYPE"

    def __init__(self, query_type: str) -> None:
        super().__init__(
            f"Unsupported query type: {query_type}. "
            "Only SELECT and CONSTRUCT queries can be executed.",
            details={"query_type": query_type},
        )
        self.query_type = query_type


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------

class DerivationError(CredgraphError):
    code = "DERIVATION_ERROR"


class ConstructDerivationError(DerivationError):
    code = "CONSTRUCT_DERIVATION_ERROR"


# ---------------------------------------------------------------------------
# Integrity and output
# ---------------------------------------------------------------------------

class CanonicalizationError(CredgraphError):
    code = "CANONICALIZATION_ERROR"


class SerializationError(CredgraphError):
    code = "SERIALIZATION_ERROR"
