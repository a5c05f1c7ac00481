"""Summary view of a credential for lists and CLI output."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .exceptions import InvalidDate
from .types import BASE_CREDENTIAL_TYPE, Credential, as_document, parse_datetime

_SCHEME = re.compile(r"^https?://")
_WWW = re.compile(r"^www\.")


@dataclass(frozen=True)
class CredentialDisplay:
    id: str
    title: str
    issuer: str
    issuance_date: str
    expiration_date: str | None = None
    is_expired: bool = False
    types: list[str] = field(default_factory=list)

    def summary(self) -> str:
        status = "EXPIRED" if self.is_expired else "valid"
        until = f" until {self.expiration_date}" if self.expiration_date else ""
        return (
            f"{self.title} ({status})\n"
            f"  id:     {self.id}\n"
            f"  issuer: {self.issuer}\n"
            f"  issued: {self.issuance_date}{until}"
        )


def _date_label(value: Any) -> tuple[str, datetime | None]:
    try:
        parsed = parse_datetime(value)
    except InvalidDate:
        return str(value or ""), None
    return parsed.date().isoformat(), parsed


def format_for_display(
    credential: Credential | dict[str, Any],
    now: datetime | None = None,
) -> CredentialDisplay:
    """Title, short issuer, dates and expiry status of a credential.

    The title is the credential's ``name``, else the subject's ``name``,
    else its first type other than VerifiableCredential.
    """
    document = as_document(credential)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    issuer = document.get("issuer", "")
    if isinstance(issuer, dict):
        issuer = issuer.get("id", "")
    issuer = _WWW.sub("", _SCHEME.sub("", str(issuer)))

    types = document.get("type", [])
    types = types if isinstance(types, list) else [types]
    subject = document.get("credentialSubject")
    subject = subject if isinstance(subject, dict) else {}

    title = "Verifiable Credential"
    if isinstance(document.get("name"), str) and document["name"]:
        title = document["name"]
    elif isinstance(subject.get("name"), str) and subject["name"]:
        title = subject["name"]
    else:
        title = next((t for t in types if t != BASE_CREDENTIAL_TYPE), title)

    issued, _ = _date_label(document.get("issuanceDate"))
    expiration, expires_at = (None, None)
    if document.get("expirationDate"):
        expiration, expires_at = _date_label(document["expirationDate"])

    return CredentialDisplay(
        id=str(document.get("id", "")),
        title=title,
        issuer=issuer,
        issuance_date=issued,
        expiration_date=expiration,
        is_expired=expires_at is not None and expires_at < now,
        types=list(types),
    )
