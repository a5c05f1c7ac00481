"""Validation — credential document shape and graph conformance.

Two independent checks:

  DOCUMENT — validate_credential / parse_credential:
    The JSON document carries the fields every credential must have
    (``@context``, ``id``, ``type``, ``issuer``, ``issuanceDate``,
    ``credentialSubject``) in the expected shapes, with parseable dates.
    Failures raise the document-shape errors from ``exceptions``.

  GRAPH — check_conformance:
    The materialized statements are checked with SHACL (pySHACL) against
    a small shapes graph for ``cred:VerifiableCredential`` nodes. Where
    the document check looks at JSON keys, this one looks at what the
    JSON-LD contexts actually produced: an ``issuer`` that expands to a
    literal, or an ``issuanceDate`` that lost its datatype, only shows up
    here.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from rdflib import BNode, Graph, Literal, Namespace, RDF, RDFS, XSD
from rdflib.namespace import SH

from .exceptions import (
    InvalidContext,
    InvalidFormat,
    InvalidType,
    MissingField,
)
from .materialize import CredentialLike, materialize
from .types import BASE_CREDENTIAL_TYPE, Credential, parse_datetime

logger = logging.getLogger(__name__)

CRED = Namespace("https://www.w3.org/2018/credentials#")
SHAPES = Namespace("urn:credgraph:shapes:")

REQUIRED_FIELDS = (
    "@context",
    "id",
    "type",
    "issuer",
    "issuanceDate",
    "credentialSubject",
)


# ---------------------------------------------------------------------------
# Document shape
# ---------------------------------------------------------------------------

def validate_credential(obj: Any) -> Credential:
    """Check the document shape and return it as an immutable Credential."""
    if isinstance(obj, Credential):
        obj = obj.document
    if not isinstance(obj, Mapping):
        raise InvalidFormat("Credential must be a JSON object")

    for name in REQUIRED_FIELDS:
        if name not in obj or obj[name] is None:
            raise MissingField(name)

    context = obj["@context"]
    if not isinstance(context, (str, list)) or not context:
        raise InvalidContext("@context must be a string or a non-empty array")

    types = obj["type"]
    if not isinstance(types, list) or BASE_CREDENTIAL_TYPE not in types:
        raise InvalidType(f"type must be an array containing {BASE_CREDENTIAL_TYPE}")

    issuer = obj["issuer"]
    if isinstance(issuer, Mapping):
        if not issuer.get("id"):
            raise MissingField("issuer.id")
    elif not isinstance(issuer, str) or not issuer:
        raise InvalidFormat("issuer must be an IRI or an object with an id")

    if not isinstance(obj["credentialSubject"], Mapping):
        raise InvalidFormat("credentialSubject must be an object")

    parse_datetime(obj["issuanceDate"], "issuanceDate")
    if obj.get("expirationDate") is not None:
        parse_datetime(obj["expirationDate"], "expirationDate")

    return Credential.from_dict(obj)


def parse_credential(text: str) -> Credential:
    """Parse JSON text and validate it as a credential."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise InvalidFormat(f"Invalid JSON: {exc}", code="INVALID_JSON") from exc
    return validate_credential(data)


# ---------------------------------------------------------------------------
# SHACL shapes
# ---------------------------------------------------------------------------

def _property(
    sg: Graph,
    shape: Any,
    path: Any,
    min_count: int | None = None,
    max_count: int | None = None,
    datatype: Any = None,
    node_kind: Any = None,
) -> None:
    prop = BNode()
    sg.add((shape, SH.property, prop))
    sg.add((prop, SH.path, path))
    if min_count is not None:
        sg.add((prop, SH.minCount, Literal(min_count)))
    if max_count is not None:
        sg.add((prop, SH.maxCount, Literal(max_count)))
    if datatype is not None:
        sg.add((prop, SH.datatype, datatype))
    if node_kind is not None:
        sg.add((prop, SH.nodeKind, node_kind))


def credential_shapes() -> Graph:
    """SHACL shapes for ``cred:VerifiableCredential`` nodes.

      cred:issuer             exactly one, an IRI
      cred:issuanceDate       exactly one, xsd:dateTime
      cred:expirationDate     at most one, xsd:dateTime
      cred:credentialSubject  at least one
    """
    sg = Graph()
    sg.bind("sh", SH)
    sg.bind("cred", CRED)
    sg.bind("xsd", XSD)

    shape = SHAPES.VerifiableCredentialShape
    sg.add((shape, RDF.type, SH.NodeShape))
    sg.add((shape, SH.targetClass, CRED.VerifiableCredential))
    sg.add((shape, RDFS.label, Literal("Shape for VerifiableCredential")))

    _property(sg, shape, CRED.issuer, min_count=1, max_count=1, node_kind=SH.IRI)
    _property(sg, shape, CRED.issuanceDate, min_count=1, max_count=1, datatype=XSD.dateTime)
    _property(sg, shape, CRED.expirationDate, max_count=1, datatype=XSD.dateTime)
    _property(sg, shape, CRED.credentialSubject, min_count=1)
    return sg


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

def _local(iri: str) -> str:
    for sep in ("#", "/", ":"):
        if sep in iri:
            iri = iri.rsplit(sep, 1)[-1]
    return iri


SKIPPED = "Skipped"


@dataclass
class ShapeViolation:
    """One finding about a credential: a SHACL result, or a credential that
    never reached the graph (severity ``Skipped``)."""
    focus_node: str
    path: str
    message: str
    severity: str

    def __repr__(self) -> str:
        return f"ShapeViolation({self.severity} {self.focus_node} {_local(self.path)}: {self.message})"


@dataclass
class ConformanceResult:
    """Outcome of checking materialized credentials against the shapes.

    ``conforms`` is the SHACL verdict over the credentials that could be
    materialized; those that could not are listed among the findings.
    """
    conforms: bool
    violations: list[ShapeViolation] = field(default_factory=list)
    checked: int = 0
    data_graph: Graph | None = None

    @property
    def skipped(self) -> list[str]:
        return [v.focus_node for v in self.violations if v.severity == SKIPPED]

    def by_credential(self) -> dict[str, list[ShapeViolation]]:
        grouped: dict[str, list[ShapeViolation]] = {}
        for v in self.violations:
            grouped.setdefault(v.focus_node or "?", []).append(v)
        return grouped

    def summary(self) -> str:
        status = "CONFORMS" if self.conforms else "DOES NOT CONFORM"
        usable = self.checked - len(self.skipped)
        lines = [f"Credential graph {status}: {usable}/{self.checked} credentials checked"]
        for focus, findings in self.by_credential().items():
            lines.append(f"  {focus}")
            for v in findings:
                lines.append(f"    [{v.severity}] {_local(v.path) or '-'}: {v.message}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# SHACL validation
# ---------------------------------------------------------------------------

def check_conformance(
    credentials: Iterable[CredentialLike],
    loader: Any = None,
) -> ConformanceResult:
    """Materialize ``credentials`` and validate the graph with pySHACL.

    Credentials that cannot be materialized are reported as ``Skipped``
    findings and do not take part in the SHACL run.
    """
    from pyshacl import validate as pyshacl_validate

    materialization = materialize(credentials, loader)
    shapes_graph = credential_shapes()
    data_graph = materialization.graph()

    conforms, results_graph, _ = pyshacl_validate(
        data_graph,
        shacl_graph=shapes_graph,
        inference="none",
        abort_on_first=False,
    )

    violations = [
        ShapeViolation(
            focus_node=failure.credential_id,
            path="",
            message=f"not materialized: {failure.error.message}",
            severity=SKIPPED,
        )
        for failure in materialization.failures
    ]
    for result in results_graph.subjects(RDF.type, SH.ValidationResult):
        focus = results_graph.value(result, SH.focusNode)
        path = results_graph.value(result, SH.resultPath)
        message = results_graph.value(result, SH.resultMessage)
        severity = results_graph.value(result, SH.resultSeverity)
        violations.append(ShapeViolation(
            focus_node=str(focus) if focus else "",
            path=str(path) if path else "",
            message=str(message) if message else "",
            severity=_local(str(severity)) if severity else "",
        ))

    if violations:
        logger.info("SHACL check produced %d findings", len(violations))

    return ConformanceResult(
        conforms=bool(conforms),
        violations=violations,
        checked=materialization.credential_count,
        data_graph=data_graph,
    )
