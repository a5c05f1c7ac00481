"""Runtime configuration.

All tunables are read from environment variables with safe defaults.
Invalid values are logged and replaced by the default rather than
failing at import time.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    logger.warning("Invalid boolean for %s=%r, using default %s", name, raw, default)
    return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    """Pipeline settings.

    allow_remote_contexts: let the JSON-LD processor fetch contexts that
        are not bundled with the package.
    derived_issuer: issuer of derived credentials when the template names none.
    derived_id_prefix: prefix of the hash-based derived credential id.
    canon_algorithm: RDF dataset canonicalization algorithm identifier.
    log_level: level the CLI configures for the root logger.
    """
    allow_remote_contexts: bool = False
    derived_issuer: str = "did:example:derived-issuer"
    derived_id_prefix: str = "urn:derived:"
    canon_algorithm: str = "URDNA2015"
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        level = _get_str_env("CREDGRAPH_LOG_LEVEL", cls.log_level).upper()
        if level not in _LOG_LEVELS:
            logger.warning("Invalid CREDGRAPH_LOG_LEVEL=%r, using %s", level, cls.log_level)
            level = cls.log_level
        return cls(
            allow_remote_contexts=_get_bool_env(
                "CREDGRAPH_ALLOW_REMOTE_CONTEXTS", cls.allow_remote_contexts
            ),
            derived_issuer=_get_str_env("CREDGRAPH_DERIVED_ISSUER", cls.derived_issuer),
            derived_id_prefix=_get_str_env(
                "CREDGRAPH_DERIVED_ID_PREFIX", cls.derived_id_prefix
            ),
            canon_algorithm=_get_str_env("CREDGRAPH_CANON_ALGORITHM", cls.canon_algorithm),
            log_level=level,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, read once from the environment."""
    return Settings.from_env()
