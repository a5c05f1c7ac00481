"""JSON-LD document loader with bundled contexts.

Credential contexts are resolved from files shipped in ``contexts/`` so
that materialization is offline and repeatable. Remote fetching through
PyLD's requests loader is opt-in (``CREDGRAPH_ALLOW_REMOTE_CONTEXTS``);
without it an unknown context URL is an ``InvalidJsonLdContext`` error for
the credential that references it.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable

from pyld import jsonld

from .config import Settings, get_settings
from .exceptions import InvalidJsonLdContext
from .types import CREDENTIALS_V1, DERIVED_CONTEXT_V1

logger = logging.getLogger(__name__)

CONTEXTS_DIR = Path(__file__).parent / "contexts"

# URL -> bundled file
BUNDLED_CONTEXTS: dict[str, str] = {
    CREDENTIALS_V1: "credentials_v1.jsonld",
    DERIVED_CONTEXT_V1: "derived_v1.jsonld",
}

DocumentLoader = Callable[..., dict[str, Any]]


@lru_cache(maxsize=None)
def _read_bundled(filename: str) -> str:
    return (CONTEXTS_DIR / filename).read_text(encoding="utf-8")


def bundled_context(url: str) -> dict[str, Any] | None:
    """Return a fresh copy of the bundled context document for ``url``."""
    filename = BUNDLED_CONTEXTS.get(url.rstrip("#"))
    if filename is None:
        return None
    return json.loads(_read_bundled(filename))


def make_document_loader(settings: Settings | None = None) -> DocumentLoader:
    """Build a PyLD ``documentLoader`` serving bundled contexts first."""
    settings = settings or get_settings()
    remote = jsonld.requests_document_loader() if settings.allow_remote_contexts else None

    def load(url: str, options: dict[str, Any] | None = None) -> dict[str, Any]:
        document = bundled_context(url)
        if document is not None:
            return {
                "contentType": "application/ld+json",
                "contextUrl": None,
                "documentUrl": url,
                "document": document,
            }
        if remote is None:
            raise InvalidJsonLdContext(
                f"Context {url} is not bundled and remote contexts are disabled",
                details={"url": url},
            )
        logger.debug("Fetching remote context %s", url)
        return remote(url, options or {})

    return load
