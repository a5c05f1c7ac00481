"""RDF Materializer — credentials to one deduplicated statement set.

Each credential is converted independently:

  credential --(PyLD to_rdf)--> N-Quads text --(rdflib)--> quads

Quads in a named graph are dropped. JSON-LD ``@graph`` containers (the
credentials context declares ``proof`` as one) put statements into
per-document named graphs, and those must not leak into the combined
dataset that queries run against.

A credential that fails conversion is logged, recorded as a failure and
skipped; the rest of the batch is still materialized. If nothing converts,
the result is an empty statement set, which is a valid (resultless) graph
to query.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Any

from pyld import jsonld
from pyld.jsonld import JsonLdError
from rdflib import Dataset, Graph
from rdflib.graph import DATASET_DEFAULT_GRAPH_ID

from .exceptions import (
    CredentialError,
    CredgraphError,
    InvalidJsonLdContext,
    MaterializationError,
)
from .loader import DocumentLoader, make_document_loader
from .types import CREDENTIALS_V1, Credential, Statement, as_document, credential_id

logger = logging.getLogger(__name__)

CredentialLike = Credential | Mapping[str, Any]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MaterializationFailure:
    """A credential that could not be converted, and why."""
    credential_id: str
    error: CredgraphError

    def __repr__(self) -> str:
        return f"MaterializationFailure({self.credential_id}: {self.error.code})"


@dataclass
class Materialization:
    """The statement set produced by one materialization pass.

    ``total`` counts every quad the conversions produced, named graphs and
    duplicates included; ``usable`` counts the deduplicated default-graph
    statements that queries run against.
    """
    statements: list[Statement] = field(default_factory=list)
    total: int = 0
    credential_count: int = 0
    failures: list[MaterializationFailure] = field(default_factory=list)

    @property
    def usable(self) -> int:
        return len(self.statements)

    @property
    def usable_credentials(self) -> int:
        return self.credential_count - len(self.failures)

    def graph(self) -> Graph:
        """Return a fresh rdflib Graph holding the statements."""
        g = Graph()
        for triple in self.statements:
            g.add(triple)
        return g

    def summary(self) -> str:
        lines = [
            f"Materialized {self.usable_credentials}/{self.credential_count} credentials",
            f"  statements: total={self.total} usable={self.usable}",
        ]
        for failure in self.failures:
            lines.append(f"  skipped {failure.credential_id}: {failure.error.message}")
        return "\n".join(lines)

    def __iter__(self) -> Iterator[Statement]:
        return iter(self.statements)

    def __len__(self) -> int:
        return len(self.statements)

    def __repr__(self) -> str:
        return (
            f"Materialization({self.usable} statements, "
            f"{len(self.failures)} failures)"
        )


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

def _cause_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        nested = getattr(current, "cause", None)
        current = nested if isinstance(nested, BaseException) else current.__cause__


def _classify_jsonld_error(exc: BaseException, cred_id: str) -> CredentialError:
    """Map a PyLD failure onto the credential error taxonomy."""
    chain = list(_cause_chain(exc))
    for err in chain:
        if isinstance(err, CredentialError):
            return err
    for err in chain:
        code = getattr(err, "code", None) or ""
        if code == "protected term redefinition" or "protected term" in str(err):
            return InvalidJsonLdContext(
                f"Credential {cred_id} redefines a protected term",
                details={"credential": cred_id, "reason": str(err)},
            )
        if "context" in code:
            return InvalidJsonLdContext(
                f"Credential {cred_id} has an invalid JSON-LD context: {err}",
                details={"credential": cred_id, "reason": str(err), "jsonld_code": code},
            )
    return MaterializationError(
        f"Failed to convert credential {cred_id} to RDF: {exc}",
        details={"credential": cred_id, "reason": str(exc)},
    )


def _is_default_graph(graph_id: Any) -> bool:
    return graph_id is None or graph_id == DATASET_DEFAULT_GRAPH_ID


# ---------------------------------------------------------------------------
# Per-credential conversion
# ---------------------------------------------------------------------------

def to_nquads(credential: CredentialLike, loader: DocumentLoader | None = None) -> str:
    """Expand one credential and return its N-Quads serialization."""
    cred_id = credential_id(credential)
    document = as_document(credential)
    options = {
        "format": "application/n-quads",
        "documentLoader": loader or make_document_loader(),
    }
    try:
        return jsonld.to_rdf(document, options)
    except (JsonLdError, CredgraphError) as exc:
        raise _classify_jsonld_error(exc, cred_id) from exc
    except Exception as exc:
        raise MaterializationError(
            f"Failed to convert credential {cred_id} to RDF: {exc}",
            details={"credential": cred_id, "reason": str(exc)},
        ) from exc


def credential_quads(
    credential: CredentialLike,
    loader: DocumentLoader | None = None,
) -> list[tuple[Any, Any, Any, Any]]:
    """Return every quad of one credential; graph is None for the default graph."""
    nquads = to_nquads(credential, loader)
    dataset = Dataset()
    try:
        dataset.parse(data=nquads, format="nquads")
    except Exception as exc:
        cred_id = credential_id(credential)
        raise MaterializationError(
            f"Failed to parse RDF for credential {cred_id}: {exc}",
            details={"credential": cred_id, "reason": str(exc)},
        ) from exc
    return [
        (s, p, o, None if _is_default_graph(g) else g)
        for s, p, o, g in dataset.quads((None, None, None, None))
    ]


def credential_statements(
    credential: CredentialLike,
    loader: DocumentLoader | None = None,
) -> list[Statement]:
    """Default-graph statements of a single credential. Raises on failure."""
    return [(s, p, o) for s, p, o, g in credential_quads(credential, loader) if g is None]


# ---------------------------------------------------------------------------
# Batch materialization
# ---------------------------------------------------------------------------

def materialize(
    credentials: Iterable[CredentialLike],
    loader: DocumentLoader | None = None,
) -> Materialization:
    """Convert all credentials into one deduplicated default-graph statement set.

    Per-credential failures are tolerated: the failing credential is
    skipped and reported in ``Materialization.failures``.
    """
    loader = loader or make_document_loader()
    result = Materialization()
    seen: dict[Statement, None] = {}

    for credential in credentials:
        result.credential_count += 1
        cred_id = credential_id(credential) or f"#{result.credential_count}"
        try:
            quads = credential_quads(credential, loader)
        except CredentialError as exc:
            logger.warning("Skipping credential %s: %s", cred_id, exc.message)
            result.failures.append(MaterializationFailure(cred_id, exc))
            continue

        result.total += len(quads)
        for s, p, o, g in quads:
            if g is None:
                seen.setdefault((s, p, o), None)

    result.statements = list(seen)
    logger.info(
        "Materialized credentials: total=%d usable=%d skipped=%d",
        result.total, result.usable, len(result.failures),
    )
    return result


# ---------------------------------------------------------------------------
# Expansion and compaction
# ---------------------------------------------------------------------------

def expand_credential(
    credential: CredentialLike,
    loader: DocumentLoader | None = None,
) -> list[dict[str, Any]]:
    """Return the JSON-LD expanded form of one credential."""
    cred_id = credential_id(credential)
    try:
        return jsonld.expand(
            as_document(credential),
            {"documentLoader": loader or make_document_loader()},
        )
    except (JsonLdError, CredgraphError) as exc:
        raise _classify_jsonld_error(exc, cred_id) from exc


def compact_credential(
    expanded: Any,
    context: Any = None,
    loader: DocumentLoader | None = None,
) -> dict[str, Any]:
    """Compact an expanded document, by default against the credentials context."""
    context = context or CREDENTIALS_V1
    try:
        return jsonld.compact(
            expanded,
            {"@context": context},
            {"documentLoader": loader or make_document_loader()},
        )
    except (JsonLdError, CredgraphError) as exc:
        raise _classify_jsonld_error(exc, "expanded document") from exc
