"""Human-readable business identifiers (``PAYOUT_20261019_AB12CD``)."""

from __future__ import annotations

import secrets
import string
import uuid

from .clock import utcnow

_ALPHABET = string.ascii_uppercase + string.digits


def generate_uuid() -> str:
    return str(uuid.uuid4())


def business_id(prefix: str) -> str:
    stamp = utcnow().strftime("%Y%m%d%H%M%S")
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(8))
    return f"{prefix}_{stamp}_{suffix}"
