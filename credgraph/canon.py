"""Canonical Hasher — order- and label-independent statement set digests.

  statements --(rdflib)--> N-Triples --(PyLD URDNA2015)--> canonical N-Quads --> SHA-256

Isomorphic statement sets produce the same digest regardless of statement
order or blank node labels.

If canonicalization fails, ``canonical_hash`` falls back to a digest of
wall-clock time plus randomness and logs a warning. That digest is unique
but NOT reproducible; ``canonicalize`` is the strict variant for callers
that need to know.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from typing import Iterable

from pyld import jsonld
from rdflib import Graph

from .config import get_settings
from .exceptions import CanonicalizationError
from .types import Statement

logger = logging.getLogger(__name__)

NQUADS = "application/n-quads"


def sha256_hex(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def to_ntriples(statements: Iterable[Statement]) -> str:
    """Line-based serialization of a statement set (order not significant)."""
    graph = Graph()
    for triple in statements:
        graph.add(triple)
    return graph.serialize(format="nt")


def canonicalize(statements: Iterable[Statement], algorithm: str | None = None) -> str:
    """Return the canonical N-Quads of a statement set.

    Raises:
        CanonicalizationError: serialization or normalization failed.
    """
    algorithm = algorithm or get_settings().canon_algorithm
    try:
        nquads = to_ntriples(statements)
        return jsonld.normalize(
            nquads,
            {"algorithm": algorithm, "inputFormat": NQUADS, "format": NQUADS},
        )
    except Exception as exc:
        raise CanonicalizationError(
            f"Canonicalization ({algorithm}) failed: {exc}",
            details={"algorithm": algorithm},
        ) from exc


def canonical_hash(statements: Iterable[Statement], algorithm: str | None = None) -> str:
    """SHA-256 hex digest of the canonicalized statement set.

    Falls back to a non-deterministic digest when canonicalization fails.
    """
    try:
        return sha256_hex(canonicalize(statements, algorithm))
    except CanonicalizationError as exc:
        logger.warning("%s; using non-deterministic fallback digest", exc.message)
        return sha256_hex(f"{time.time_ns()}:{secrets.token_hex(16)}")
