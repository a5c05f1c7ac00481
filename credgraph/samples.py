"""Built-in sample queries over common credential vocabularies."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from .exceptions import CredgraphError
from .materialize import CredentialLike, materialize
from .query import execute_select, parse_query
from .types import QueryKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleQuery:
    name: str
    description: str
    query: str

    @property
    def kind(self) -> QueryKind:
        return parse_query(self.query).kind

    def __repr__(self) -> str:
        return f"SampleQuery({self.name})"


_SAMPLES = (
    SampleQuery(
        name="Get All Names",
        description="Extract all names from credentials",
        query="""PREFIX schema: <http://schema.org/>
PREFIX citizenship: <https://w3id.org/citizenship#>
PREFIX foaf: <http://xmlns.com/foaf/0.1/>

SELECT ?givenName ?familyName ?fullName WHERE {
  {
    ?subject schema:givenName ?givenName .
    ?subject schema:familyName ?familyName .
  } UNION {
    ?subject citizenship:givenName ?givenName .
    ?subject citizenship:familyName ?familyName .
  } UNION {
    ?subject foaf:name ?fullName .
  } UNION {
    ?subject schema:name ?fullName .
  }
}""",
    ),
    SampleQuery(
        name="Verify Adult Status",
        description="Check if credential holder is over 18",
        query="""PREFIX schema: <http://schema.org/>
PREFIX citizenship: <https://w3id.org/citizenship#>
PREFIX xsd: <http://www.w3.org/2001/XMLSchema#>

SELECT ?subject ?birthDate ?isAdult WHERE {
  {
    ?subject schema:birthDate ?birthDate .
  } UNION {
    ?subject citizenship:birthDate ?birthDate .
  }
  BIND(xsd:date(?birthDate) AS ?birth)
  BIND(xsd:date(NOW()) AS ?today)
  BIND((?today - ?birth) > "P18Y"^^xsd:duration AS ?isAdult)
}""",
    ),
    SampleQuery(
        name="Get Vaccination Status",
        description="Extract vaccination information",
        query="""PREFIX vaccination: <https://w3id.org/vaccination#>
PREFIX schema: <http://schema.org/>

SELECT ?recipient ?vaccine ?date ?location WHERE {
  ?credential vaccination:recipient ?recipient .
  ?credential vaccination:vaccine ?vaccine .
  OPTIONAL { ?credential vaccination:occurrence ?date }
  OPTIONAL { ?credential vaccination:location ?location }
}""",
    ),
    SampleQuery(
        name="Combine Identity Info",
        description="Create a consolidated identity profile",
        query="""PREFIX schema: <http://schema.org/>
PREFIX citizenship: <https://w3id.org/citizenship#>
PREFIX cred: <https://www.w3.org/2018/credentials#>

CONSTRUCT {
  ?subject schema:givenName ?givenName ;
           schema:familyName ?familyName ;
           schema:birthDate ?birthDate ;
           schema:nationality ?country ;
           cred:credentialType ?credType .
} WHERE {
  ?credential cred:credentialSubject ?subject .
  ?credential a ?credType .
  OPTIONAL {
    { ?subject schema:givenName ?givenName }
    UNION
    { ?subject citizenship:givenName ?givenName }
  }
  OPTIONAL {
    { ?subject schema:familyName ?familyName }
    UNION
    { ?subject citizenship:familyName ?familyName }
  }
  OPTIONAL {
    { ?subject schema:birthDate ?birthDate }
    UNION
    { ?subject citizenship:birthDate ?birthDate }
  }
  OPTIONAL {
    { ?subject schema:nationality ?country }
    UNION
    { ?subject citizenship:birthCountry ?country }
  }
  FILTER(?credType != cred:VerifiableCredential)
}""",
    ),
)


def sample_queries() -> list[SampleQuery]:
    return list(_SAMPLES)


def available_sample_queries(
    credentials: Iterable[CredentialLike],
    loader: Any = None,
) -> list[SampleQuery]:
    """Samples that run over ``credentials`` and return at least one row.

    CONSTRUCT samples are judged by their preview SELECT.
    """
    from .construct import extract_select

    statements = materialize(credentials, loader).statements
    available = []
    for sample in _SAMPLES:
        try:
            algebra = parse_query(sample.query)
            if algebra.kind is QueryKind.CONSTRUCT:
                algebra = parse_query(extract_select(algebra).select_text)
            rows = execute_select(algebra, statements)
        except CredgraphError as exc:
            logger.debug("Sample %r not available: %s", sample.name, exc.message)
            continue
        if rows:
            available.append(sample)
    return available
