"""Prefixes and property-to-predicate tables.

Used by the field-walking Turtle writer, which cannot rely on JSON-LD
contexts. A vocabulary is activated when one of the credential's context
identifiers contains its marker; its properties then win over the default
schema.org mapping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable


# ---------------------------------------------------------------------------
# Namespaces
# ---------------------------------------------------------------------------

CRED = "https://www.w3.org/2018/credentials#"
SEC = "https://w3id.org/security#"
SCHEMA = "http://schema.org/"
XSD = "http://www.w3.org/2001/XMLSchema#"
RDF = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
RDFS = "http://www.w3.org/2000/01/rdf-schema#"
DERIVED = "https://w3id.org/credentials/derived#"

# Always declared by the field-walking writer
CORE_PREFIXES: dict[str, str] = {
    "cred": CRED,
    "sec": SEC,
    "xsd": XSD,
    "rdf": RDF,
    "rdfs": RDFS,
    "schema": SCHEMA,
}

# Property name -> prefixed predicate when no vocabulary claims it
DEFAULT_PREDICATES: dict[str, str] = {
    "name": "schema:name",
    "givenName": "schema:givenName",
    "familyName": "schema:familyName",
    "birthDate": "schema:birthDate",
    "gender": "schema:gender",
    "image": "schema:image",
    "address": "schema:address",
    "code": "schema:code",
    "codeSystem": "schema:codeSystem",
    "displayName": "schema:displayName",
}


@dataclass(frozen=True)
class Vocabulary:
    """A context-activated vocabulary: marker -> prefix -> properties."""
    marker: str
    prefix: str
    namespace: str
    properties: tuple[str, ...] = field(default_factory=tuple)

    def matches(self, context: Any) -> bool:
        return isinstance(context, str) and self.marker in context

    def predicates(self) -> dict[str, str]:
        return {prop: f"{self.prefix}:{prop}" for prop in self.properties}


VOCABULARIES: tuple[Vocabulary, ...] = (
    Vocabulary(
        marker="credentials/examples",
        prefix="credex",
        namespace="https://www.w3.org/2018/credentials/examples#",
        properties=("degree", "graduationDate"),
    ),
    Vocabulary(
        marker="citizenship",
        prefix="citizenship",
        namespace="https://w3id.org/citizenship#",
        properties=(
            "givenName",
            "familyName",
            "birthDate",
            "gender",
            "residentSince",
            "lprCategory",
            "lprNumber",
            "commuterClassification",
            "birthCountry",
        ),
    ),
    Vocabulary(
        marker="vaccination",
        prefix="vaccination",
        namespace="https://w3id.org/vaccination#",
        properties=(
            "recipient",
            "vaccine",
            "occurrence",
            "location",
            "lotNumber",
            "doseSequence",
        ),
    ),
)

# Prefix map for pretty-printed graphs
PREFIX_MAP: dict[str, str] = {
    **CORE_PREFIXES,
    **{v.prefix: v.namespace for v in VOCABULARIES},
    "foaf": "http://xmlns.com/foaf/0.1/",
    "dc": "http://purl.org/dc/terms/",
    "dcred": DERIVED,
}


def active_vocabularies(contexts: Iterable[Any]) -> list[Vocabulary]:
    """Vocabularies activated by any of the given context identifiers."""
    contexts = list(contexts)
    return [v for v in VOCABULARIES if any(v.matches(c) for c in contexts)]


def predicate_table(contexts: Iterable[Any]) -> dict[str, str]:
    """Property -> predicate table for a credential with these contexts."""
    table = dict(DEFAULT_PREDICATES)
    for vocabulary in active_vocabularies(contexts):
        table.update(vocabulary.predicates())
    return table
