"""Query Classifier and Binding Executor.

Only two query shapes are executable:

  SELECT     rdflib algebra root ``SelectQuery`` (a projection)
  CONSTRUCT  rdflib algebra root ``ConstructQuery``

ASK and DESCRIBE parse but are rejected with ``UnsupportedQueryType``;
INSERT/DELETE and other updates are recognised by the update grammar and
rejected the same way. The gate runs when a query is classified and again
inside execution, so no code path evaluates anything else.

Bindings are plain dicts of variable name to rdflib term, in the order the
SPARQL evaluator yields them. Callers must not rely on row order unless the
query has an ORDER BY.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

from rdflib import BNode, Graph, Literal, URIRef
from rdflib.plugins.sparql.algebra import translateQuery
from rdflib.plugins.sparql.parser import parseQuery, parseUpdate
from rdflib.term import Identifier, Variable

from .exceptions import SparqlError, UnsupportedQueryType
from .types import Algebra, Binding, QueryKind, Statement, TemplateStatement

logger = logging.getLogger(__name__)

_SUPPORTED = {
    "SelectQuery": QueryKind.SELECT,
    "ConstructQuery": QueryKind.CONSTRUCT,
}

_UNSUPPORTED_LABELS = {
    "AskQuery": "ASK",
    "DescribeQuery": "DESCRIBE",
}


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

def _parses_as_update(text: str) -> bool:
    """True if ``text`` is a non-empty SPARQL Update request."""
    try:
        update = parseUpdate(text)
    except Exception:
        return False
    return bool(update.request)


def _bgp_triples(node: Any) -> list[TemplateStatement]:
    """Triples of the first basic graph pattern below an algebra node."""
    while node is not None:
        if getattr(node, "name", None) == "BGP":
            return list(node.triples or [])
        node = getattr(node, "p", None)
    return []


def parse_query(text: str) -> Algebra:
    """Parse and classify a query.

    Raises:
        SparqlError: the text is not valid SPARQL (parser message preserved).
        UnsupportedQueryType: the query is valid but not SELECT/CONSTRUCT.
    """
    if not text or not text.strip():
        raise SparqlError("Empty SPARQL query")

    try:
        parsed = parseQuery(text)
    except Exception as exc:
        if _parses_as_update(text):
            raise UnsupportedQueryType("UPDATE") from exc
        raise SparqlError(
            f"SPARQL syntax error: {exc}",
            details={"engine_message": str(exc)},
        ) from exc

    name = parsed[1].name
    kind = _SUPPORTED.get(name)
    if kind is None:
        raise UnsupportedQueryType(_UNSUPPORTED_LABELS.get(name, name))

    try:
        query = translateQuery(parsed)
    except Exception as exc:
        raise SparqlError(str(exc), details={"engine_message": str(exc)}) from exc

    root = query.algebra
    if root.datasetClause:
        raise SparqlError("FROM / FROM NAMED clauses are not supported; only the default graph is queried")

    if kind is QueryKind.SELECT:
        variables = tuple(str(v) for v in (root.PV or []))
        return Algebra(kind=kind, text=text, variables=variables, where=root.p, query=query)

    template = root.template or _bgp_triples(root.p)
    return Algebra(
        kind=kind,
        text=text,
        template=tuple(tuple(t) for t in template),
        where=root.p,
        query=query,
    )


def classify_query(text: str) -> QueryKind:
    """Return the kind of an executable query; raises like ``parse_query``."""
    return parse_query(text).kind


# ---------------------------------------------------------------------------
# Binding Executor
# ---------------------------------------------------------------------------

def _as_graph(statements: Graph | Iterable[Statement]) -> Graph:
    if isinstance(statements, Graph):
        return statements
    graph = Graph()
    for triple in statements:
        graph.add(triple)
    return graph


def execute_select(
    query: str | Algebra,
    statements: Graph | Iterable[Statement],
) -> list[dict[str, Identifier]]:
    """Evaluate a SELECT query against a statement set.

    An empty statement set yields no bindings. Evaluator failures are
    re-raised as ``SparqlError`` carrying the engine's message.
    """
    algebra = query if isinstance(query, Algebra) else parse_query(query)
    if algebra.kind is not QueryKind.SELECT:
        raise UnsupportedQueryType(algebra.kind.name)

    graph = _as_graph(statements)
    if len(graph) == 0:
        logger.debug("Empty statement set, skipping evaluation")
        return []

    try:
        rows = [
            {str(name): term for name, term in row.asdict().items()}
            for row in graph.query(algebra.query)
        ]
    except Exception as exc:
        raise SparqlError(
            f"SPARQL query failed: {exc}",
            details={"engine_message": str(exc)},
        ) from exc

    logger.debug("Evaluated SELECT over %d statements: %d rows", len(graph), len(rows))
    return rows


def execute_query(
    text: str,
    credentials: Sequence[Any],
    loader: Any = None,
    materialization: Any = None,
) -> list[dict[str, Identifier]]:
    """Run a SELECT or CONSTRUCT query over credentials and return bindings.

    For CONSTRUCT the bindings are those of the extracted preview SELECT;
    nothing is constructed until a selection is handed to
    ``construct.construct_from_selection``. A caller that already holds the
    ``Materialization`` of ``credentials`` (to report its failures) passes
    it in and the credentials are not converted again.
    """
    from .construct import extract_select
    from .materialize import materialize

    algebra = parse_query(text)
    if materialization is None:
        materialization = materialize(credentials, loader)
    if algebra.kind is QueryKind.CONSTRUCT:
        extracted = extract_select(algebra)
        return execute_select(extracted.select_text, materialization.statements)
    return execute_select(algebra, materialization.statements)


# ---------------------------------------------------------------------------
# JSON form of bindings (SPARQL 1.1 JSON results term shape)
# ---------------------------------------------------------------------------

def term_to_json(term: Identifier) -> dict[str, str]:
    if isinstance(term, URIRef):
        return {"type": "uri", "value": str(term)}
    if isinstance(term, BNode):
        return {"type": "bnode", "value": str(term)}
    if isinstance(term, Literal):
        out = {"type": "literal", "value": str(term)}
        if term.language:
            out["xml:lang"] = term.language
        elif term.datatype:
            out["datatype"] = str(term.datatype)
        return out
    raise SparqlError(f"Cannot convert term {term!r} to JSON")


def term_from_json(data: Mapping[str, Any] | Identifier) -> Identifier:
    if isinstance(data, Identifier):
        return data
    kind = data.get("type")
    value = data.get("value", "")
    if kind == "uri":
        return URIRef(value)
    if kind == "bnode":
        return BNode(value)
    if kind in ("literal", "typed-literal"):
        lang = data.get("xml:lang")
        datatype = data.get("datatype")
        if lang:
            return Literal(value, lang=lang)
        return Literal(value, datatype=URIRef(datatype) if datatype else None)
    raise SparqlError(f"Unknown binding term type: {kind!r}")


def binding_to_json(binding: Binding) -> dict[str, dict[str, str]]:
    return {str(name): term_to_json(term) for name, term in binding.items()}


def binding_from_json(data: Mapping[str, Any]) -> dict[str, Identifier]:
    """Accept a binding in JSON form (or already holding rdflib terms)."""
    return {
        str(name).lstrip("?"): term_from_json(value)
        for name, value in data.items()
        if value is not None
    }


def variable_name(term: Any) -> str | None:
    """Return the variable name if ``term`` is a SPARQL variable."""
    return str(term) if isinstance(term, Variable) else None
