"""Construct Extractor and Construct Binder.

A CONSTRUCT query is never evaluated in one go. Instead:

  1. extract   CONSTRUCT -> SELECT over the template's variables, with the
               same prologue (PREFIX/BASE) and the same WHERE clause
  2. preview   the SELECT runs through the Binding Executor; the caller
               sees one row per candidate and picks some of them
  3. bind      only the picked rows are substituted into the template

so an unfiltered or subject-less CONSTRUCT never silently materializes the
full cross-product of its matches.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Sequence

from rdflib import BNode, Literal, URIRef
from rdflib.term import Identifier, Variable

from .exceptions import ConstructDerivationError, SparqlError
from .query import binding_from_json, execute_select, parse_query
from .types import Algebra, QueryKind, Statement, TemplateStatement

logger = logging.getLogger(__name__)

_NAME = re.compile(r"[^\W\d][\w\-]*")


# ---------------------------------------------------------------------------
# Lexical scanning
# ---------------------------------------------------------------------------

def _skip_string(text: str, i: int) -> int:
    quote = text[i]
    if text.startswith(quote * 3, i):
        end = text.find(quote * 3, i + 3)
        return len(text) if end < 0 else end + 3
    j = i + 1
    while j < len(text):
        if text[j] == "\\":
            j += 2
            continue
        if text[j] == quote or text[j] == "\n":
            return j + 1
        j += 1
    return j


def _significant(text: str, start: int = 0) -> Iterator[tuple[int, str]]:
    """Yield (position, token) for keywords and braces.

    IRIs, string literals and comments are skipped, as are prefixed names
    and variables, so ``ex:where`` or ``?construct`` never look like
    keywords.
    """
    i = start
    n = len(text)
    while i < n:
        c = text[i]
        if c == "#":
            end = text.find("\n", i)
            i = n if end < 0 else end + 1
        elif c == "<":
            end = text.find(">", i + 1)
            i = n if end < 0 else end + 1
        elif c in "'\"":
            i = _skip_string(text, i)
        elif c in "{}":
            yield i, c
            i += 1
        elif c.isalpha() or c == "_":
            m = _NAME.match(text, i)
            if m is None:
                i += 1
                continue
            end = m.end()
            prev = text[i - 1] if i > 0 else " "
            nxt = text[end] if end < n else " "
            if prev not in ":?$" and nxt != ":":
                yield i, m.group(0)
            i = end
        else:
            i += 1


def _split_construct(text: str) -> tuple[str, str, bool]:
    """Split a CONSTRUCT query into (prologue, body after the template, short_form).

    The body starts with the dataset clauses or WHERE keyword that followed
    the template. For the short form ``CONSTRUCT WHERE { ... }`` the body is
    the WHERE clause itself.
    """
    tokens = _significant(text)
    for pos, token in tokens:
        if token.upper() == "CONSTRUCT":
            break
    else:
        raise ConstructDerivationError("CONSTRUCT keyword not found in query text")

    prologue = text[:pos]
    first = next(tokens, None)
    if first is None:
        raise ConstructDerivationError("CONSTRUCT query has no template or WHERE clause")
    start, token = first
    if token.upper() == "WHERE":
        return prologue, text[start:], True
    if token != "{":
        raise ConstructDerivationError(f"Unexpected token after CONSTRUCT: {token!r}")

    depth = 1
    for pos, token in tokens:
        if token == "{":
            depth += 1
        elif token == "}":
            depth -= 1
            if depth == 0:
                return prologue, text[pos + 1:], False
    raise ConstructDerivationError("Unbalanced braces in CONSTRUCT template")


# ---------------------------------------------------------------------------
# Construct Extractor
# ---------------------------------------------------------------------------

def template_variables(template: Iterable[TemplateStatement]) -> list[str]:
    """Variable names used in a template, first-seen order, no duplicates."""
    seen: dict[str, None] = {}
    for statement in template:
        for term in statement:
            if isinstance(term, Variable):
                seen.setdefault(str(term), None)
    return list(seen)


@dataclass(frozen=True)
class ExtractedSelect:
    """The preview SELECT derived from a CONSTRUCT."""
    select_text: str
    variables: tuple[str, ...]
    construct: Algebra

    def __repr__(self) -> str:
        return f"ExtractedSelect({list(self.variables)})"


def extract_select(query: str | Algebra) -> ExtractedSelect:
    """Derive the SELECT whose rows are the CONSTRUCT's candidate solutions.

    The projection is exactly the template variables (``*`` for a ground
    template); the prologue and WHERE clause are re-attached verbatim so the
    SELECT stays self-contained.
    """
    algebra = query if isinstance(query, Algebra) else parse_query(query)
    if algebra.kind is not QueryKind.CONSTRUCT:
        raise ConstructDerivationError(
            f"Expected a CONSTRUCT query, got {algebra.kind.name}",
            details={"query_type": algebra.kind.name},
        )

    variables = template_variables(algebra.template)
    prologue, body, _ = _split_construct(algebra.text)
    projection = " ".join(f"?{name}" for name in variables) or "*"

    parts = []
    if prologue.strip():
        parts.append(prologue.rstrip())
    parts.append(f"SELECT {projection}")
    parts.append(body.strip())
    select_text = "\n".join(parts)

    try:
        select = parse_query(select_text)
    except SparqlError as exc:
        raise ConstructDerivationError(
            f"Could not derive a SELECT from the CONSTRUCT query: {exc.message}",
            details={"select_text": select_text},
        ) from exc
    if select.kind is not QueryKind.SELECT:
        raise ConstructDerivationError("Derived query is not a SELECT")

    return ExtractedSelect(select_text=select_text, variables=tuple(variables), construct=algebra)


def extract_select_from_construct(text: str) -> tuple[str, list[str]]:
    """Return (selectText, templateVariables) for a CONSTRUCT query text."""
    extracted = extract_select(text)
    return extracted.select_text, list(extracted.variables)


# ---------------------------------------------------------------------------
# Construct Binder
# ---------------------------------------------------------------------------

def _well_formed(s: Identifier, p: Identifier, o: Identifier) -> bool:
    return not isinstance(s, Literal) and isinstance(p, URIRef) and o is not None


def bind_template(
    template: Sequence[TemplateStatement],
    bindings: Iterable[Mapping[str, Any]],
) -> list[Statement]:
    """Substitute each binding into the template.

    A template statement with a variable the binding leaves unbound is
    dropped for that binding. Blank nodes in the template are fresh per
    binding. Duplicate output statements are collapsed.
    """
    out: dict[Statement, None] = {}
    for raw in bindings:
        binding = binding_from_json(raw)
        fresh: dict[BNode, BNode] = {}
        for pattern in template:
            terms = []
            for term in pattern:
                if isinstance(term, Variable):
                    value = binding.get(str(term))
                    if value is None:
                        break
                    terms.append(value)
                elif isinstance(term, BNode):
                    terms.append(fresh.setdefault(term, BNode()))
                else:
                    terms.append(term)
            else:
                s, p, o = terms
                if _well_formed(s, p, o):
                    out.setdefault((s, p, o), None)
    return list(out)


def _row_key(binding: Mapping[str, Identifier]) -> tuple:
    # blank node labels differ between materialization passes
    return tuple(sorted(
        (name, None if isinstance(term, BNode) else term)
        for name, term in binding.items()
    ))


def construct_from_selection(
    text: str,
    selected_bindings: Sequence[Mapping[str, Any]],
    credentials: Sequence[Any] | None = None,
    loader: Any = None,
) -> list[Statement]:
    """Construct statements from the rows a caller picked out of the preview.

    When ``credentials`` are given, every selected row must be one the
    preview over those credentials actually produced.
    """
    from .materialize import materialize

    extracted = extract_select(text)
    selected = [binding_from_json(b) for b in selected_bindings]

    if credentials is not None:
        preview = execute_select(
            extracted.select_text, materialize(credentials, loader).statements
        )
        known = {_row_key(row) for row in preview}
        for index, binding in enumerate(selected):
            if _row_key(binding) not in known:
                raise ConstructDerivationError(
                    f"Selected row {index} does not match any previewed result",
                    details={"row": index},
                )

    statements = bind_template(extracted.construct.template, selected)
    logger.debug(
        "Constructed %d statements from %d selected rows",
        len(statements), len(selected),
    )
    return statements
