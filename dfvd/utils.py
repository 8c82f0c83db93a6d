import datetime
import hashlib
import secrets
import string
from typing import Optional

from .config import REPORT_PREFIX

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 6


def fingerprint(data: bytes) -> str:
    """Stable content fingerprint of the uploaded bytes (128-bit hex digest)."""
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def mint_identifier(now: Optional[datetime.datetime] = None, prefix: str = REPORT_PREFIX) -> str:
    """PREFIX-YYYYMMDD-HHMMSS-XXXXXX with an uppercase alphanumeric random suffix."""
    now = now or _utc_now()
    if now.tzinfo is not None:
        now = now.astimezone(datetime.timezone.utc)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{prefix}-{now:%Y%m%d}-{now:%H%M%S}-{suffix}"
