"""Turtle rendering of credentials and statement sets.

Serialization degrades through an explicit, ordered list of strategies;
the first that succeeds wins:

  1. pretty-turtle   JSON-LD -> statements -> rdflib Turtle with prefixes
  2. n-triples       same statements, one line each (valid Turtle)
  3. field-walk      direct walk over the credential's fields

The field-walk writer does not go through JSON-LD at all, so it still works
when a context cannot be loaded or a term is malformed. It maps property
names through ``vocabularies`` and never raises: poor input degrades the
formatting, not the surrounding pipeline.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence
from urllib.parse import quote

from rdflib import Graph

from .exceptions import SerializationError
from .materialize import credential_statements, materialize
from .types import BASE_CREDENTIAL_TYPE, Credential, Statement, as_document, credential_id
from .vocabularies import CORE_PREFIXES, PREFIX_MAP, SCHEMA, active_vocabularies, predicate_table

logger = logging.getLogger(__name__)

Strategy = tuple[str, Callable[..., str]]


def _label(credential: Any) -> str:
    if isinstance(credential, (Credential, Mapping)):
        return credential_id(credential) or "<no id>"
    return f"<{type(credential).__name__}>"


# ---------------------------------------------------------------------------
# Fallback combinator
# ---------------------------------------------------------------------------

def first_success(strategies: Sequence[Strategy], *args: Any) -> str:
    """Try each named strategy in order and return the first result.

    Raises:
        SerializationError: every strategy failed.
    """
    errors: list[str] = []
    for name, strategy in strategies:
        try:
            return strategy(*args)
        except Exception as exc:
            logger.warning("Serialization strategy %s failed: %s", name, exc)
            errors.append(f"{name}: {exc}")
    raise SerializationError(
        "All serialization strategies failed",
        details={"errors": errors},
    )


# ---------------------------------------------------------------------------
# Statement sets
# ---------------------------------------------------------------------------

def _graph(statements: Iterable[Statement], prefixes: Mapping[str, str]) -> Graph:
    graph = Graph()
    for prefix, namespace in prefixes.items():
        graph.bind(prefix, namespace, override=True, replace=True)
    for triple in statements:
        graph.add(triple)
    return graph


def pretty_turtle(
    statements: Iterable[Statement],
    prefixes: Mapping[str, str] | None = None,
) -> str:
    return _graph(statements, prefixes or PREFIX_MAP).serialize(format="turtle")


def ntriples(statements: Iterable[Statement]) -> str:
    return _graph(statements, {}).serialize(format="nt")


def statements_to_turtle(
    statements: Sequence[Statement],
    prefixes: Mapping[str, str] | None = None,
) -> str:
    """Render a statement set, falling back to N-Triples."""
    return first_success(
        (
            ("pretty-turtle", lambda: pretty_turtle(statements, prefixes)),
            ("n-triples", lambda: ntriples(statements)),
        )
    )


def combined_turtle(credentials: Iterable[Any], loader: Any = None) -> str:
    """Default-graph statements of all credentials as one Turtle document."""
    materialization = materialize(credentials, loader)
    if not materialization.statements:
        return "# No usable statements\n"
    return statements_to_turtle(materialization.statements)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

@dataclass
class _Source:
    """A credential whose statements are computed at most once."""
    credential: Any
    loader: Any = None
    _statements: list[Statement] | None = field(default=None, repr=False)

    def statements(self) -> list[Statement]:
        if self._statements is None:
            self._statements = credential_statements(self.credential, self.loader)
        return self._statements


TURTLE_STRATEGIES: tuple[Strategy, ...] = (
    ("pretty-turtle", lambda source: pretty_turtle(source.statements())),
    ("n-triples", lambda source: ntriples(source.statements())),
    ("field-walk", lambda source: fallback_turtle(source.credential)),
)


def to_turtle(credential: Any, loader: Any = None) -> str:
    """Render one credential as Turtle. Never raises."""
    try:
        return first_success(TURTLE_STRATEGIES, _Source(credential, loader))
    except SerializationError as exc:
        logger.error("Could not serialize credential %s: %s", _label(credential), exc.details)
        return f"# Unable to serialize credential {_label(credential)}\n"


# ---------------------------------------------------------------------------
# Field-walk Turtle writer
# ---------------------------------------------------------------------------

_URI_PREFIXES = ("http://", "https://", "did:")
_LOCAL_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*")
_IRI_UNSAFE = set('<>"{}|^`\\ \t\n\r')


def _looks_like_uri(value: str) -> bool:
    return value.startswith(_URI_PREFIXES)


def _iri(value: str) -> str:
    return "<" + "".join(quote(c) if c in _IRI_UNSAFE else c for c in value) + ">"


def _literal(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def _predicate(key: str, predicates: Mapping[str, str]) -> str:
    if key in predicates:
        return predicates[key]
    if _looks_like_uri(key):
        return _iri(key)
    if _LOCAL_NAME.fullmatch(key):
        return f"schema:{key}"
    return _iri(SCHEMA + quote(key, safe=""))


def _class(value: Any) -> str | None:
    if not isinstance(value, str) or not value:
        return None
    if value == BASE_CREDENTIAL_TYPE:
        return "cred:VerifiableCredential"
    if _looks_like_uri(value):
        return _iri(value)
    if _LOCAL_NAME.fullmatch(value):
        return f"schema:{value}"
    return _iri(SCHEMA + quote(value, safe=""))


def _value(value: Any, predicates: Mapping[str, str], indent: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return f'"{str(value).lower()}"^^xsd:boolean'
    if isinstance(value, int):
        return f'"{value}"^^xsd:integer'
    if isinstance(value, float):
        return f'"{value!r}"^^xsd:double'
    if isinstance(value, str):
        return _iri(value) if _looks_like_uri(value) else _literal(value)
    if isinstance(value, (list, tuple)):
        items = [_value(item, predicates, indent) for item in value]
        items = [item for item in items if item]
        return ", ".join(items) or None
    if isinstance(value, Mapping):
        return _node(value, predicates, indent)
    return _literal(str(value))


def _properties(
    entries: Mapping[str, Any],
    predicates: Mapping[str, str],
    indent: str,
) -> list[str]:
    lines = []
    for key, raw in entries.items():
        if key in ("id", "@id", "@context"):
            continue
        if key in ("type", "@type"):
            classes = [_class(t) for t in (raw if isinstance(raw, list) else [raw])]
            classes = [c for c in classes if c]
            if classes:
                lines.append(f"a {', '.join(classes)}")
            continue
        obj = _value(raw, predicates, indent + "    ")
        if obj:
            lines.append(f"{_predicate(str(key), predicates)} {obj}")
    return lines


def _node(value: Mapping[str, Any], predicates: Mapping[str, str], indent: str) -> str | None:
    """Nested object: an anonymous ``[ ... ]`` node, or its IRI if it has only an id."""
    lines = _properties(value, predicates, indent)
    node_id = value.get("id") or value.get("@id")
    if not lines:
        return _iri(node_id) if isinstance(node_id, str) and node_id else None
    inner = f" ;\n{indent}    ".join(lines)
    return f"[\n{indent}    {inner}\n{indent}]"


def _block(subject: str, lines: list[str]) -> str:
    return f"{subject} " + " ;\n    ".join(lines) + " .\n"


def _walk(document: Mapping[str, Any]) -> str:
    contexts = document.get("@context", [])
    contexts = contexts if isinstance(contexts, list) else [contexts]
    predicates = predicate_table(contexts)

    out = [f"@prefix {p}: <{ns}> ." for p, ns in CORE_PREFIXES.items()]
    out += [f"@prefix {v.prefix}: <{v.namespace}> ." for v in active_vocabularies(contexts)]
    out.append("")

    cred_id = document.get("id")
    cred_node = _iri(cred_id) if isinstance(cred_id, str) and cred_id else "_:credential"

    issuer = document.get("issuer")
    issuer_id = issuer.get("id") if isinstance(issuer, Mapping) else issuer

    subject = document.get("credentialSubject")
    subject = subject if isinstance(subject, Mapping) else {}
    subject_id = subject.get("id")
    subject_node = (
        _iri(subject_id) if isinstance(subject_id, str) and subject_id else "_:subject"
    )

    # Envelope
    types = document.get("type", [BASE_CREDENTIAL_TYPE])
    classes = [_class(t) for t in (types if isinstance(types, list) else [types])]
    envelope = [f"a {', '.join(c for c in classes if c) or 'cred:VerifiableCredential'}"]
    if isinstance(issuer_id, str) and issuer_id:
        envelope.append(f"cred:issuer {_iri(issuer_id)}")
    if document.get("issuanceDate"):
        envelope.append(f"cred:issuanceDate {_literal(str(document['issuanceDate']))}^^xsd:dateTime")
    if document.get("expirationDate"):
        envelope.append(
            f"cred:expirationDate {_literal(str(document['expirationDate']))}^^xsd:dateTime"
        )
    envelope.append(f"cred:credentialSubject {subject_node}")
    out.append("# Credential")
    out.append(_block(cred_node, envelope))

    if isinstance(issuer, Mapping) and isinstance(issuer_id, str) and issuer_id:
        issuer_lines = _properties(issuer, predicates, "")
        if issuer_lines:
            out.append("# Issuer")
            out.append(_block(_iri(issuer_id), issuer_lines))

    subject_lines = _properties(subject, predicates, "")
    if subject_lines:
        out.append("# Credential Subject")
        out.append(_block(subject_node, subject_lines))

    proof = document.get("proof")
    if isinstance(proof, Mapping):
        out.append("# Proof")
        out.append(f"{cred_node} sec:proof {_proof(proof, predicates)} .\n")

    return "\n".join(out)


def _proof(proof: Mapping[str, Any], predicates: Mapping[str, str]) -> str:
    lines = []
    if isinstance(proof.get("type"), str) and _LOCAL_NAME.fullmatch(proof["type"]):
        lines.append(f"a sec:{proof['type']}")
    if proof.get("created"):
        lines.append(f"sec:created {_literal(str(proof['created']))}^^xsd:dateTime")
    if isinstance(proof.get("verificationMethod"), str):
        lines.append(f"sec:verificationMethod {_iri(proof['verificationMethod'])}")
    purpose = proof.get("proofPurpose")
    if isinstance(purpose, str) and purpose:
        obj = f"sec:{purpose}" if _LOCAL_NAME.fullmatch(purpose) else _literal(purpose)
        lines.append(f"sec:proofPurpose {obj}")
    for key in ("jws", "proofValue"):
        if proof.get(key):
            lines.append(f"sec:{key} {_literal(str(proof[key]))}")
    if not lines:
        return "[]"
    return "[\n    " + " ;\n    ".join(lines) + "\n]"


def fallback_turtle(credential: Any) -> str:
    """Best-effort Turtle built by walking the credential's fields. Never raises."""
    try:
        return _walk(as_document(credential))
    except Exception:
        logger.exception("Field-walk serialization failed for %s", _label(credential))
        return f"# Unable to serialize credential {_label(credential)}\n"
