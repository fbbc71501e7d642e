"""HMAC-SHA256 signatures for session cookie values.

Signed values have the form ``<value>.<signature>`` where the signature is
the unpadded standard base64 encoding of HMAC-SHA256(secret, value).
"""

import base64
import binascii
import logging
from typing import Iterable, Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

logger = logging.getLogger(__name__)

Secrets = Union[str, Iterable[str]]


def _mac(secret: str) -> hmac.HMAC:
    if not secret:
        raise ValueError("session secret must be a non-empty string")
    return hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())


def sign(value: str, secret: str) -> str:
    """Return ``value`` with its signature appended."""
    mac = _mac(secret)
    mac.update(value.encode("utf-8"))
    sig = base64.b64encode(mac.finalize()).decode("ascii").rstrip("=")
    return f"{value}.{sig}"


def normalize_secrets(secrets: Secrets) -> list:
    """Accept one secret or a list; the first one is used for signing."""
    out = [secrets] if isinstance(secrets, str) else list(secrets)
    if not out or not all(out):
        raise ValueError("session secret must be a non-empty string")
    return out


def unsign(signed: str, secrets: Secrets) -> Optional[str]:
    """Return the original value when any secret verifies it, else None."""
    value, sep, sig = signed.rpartition(".")
    if not sep or not value:
        return None
    try:
        digest = base64.b64decode(sig + "=" * (-len(sig) % 4), validate=True)
    except (binascii.Error, ValueError):
        return None

    for secret in normalize_secrets(secrets):
        mac = _mac(secret)
        mac.update(value.encode("utf-8"))
        try:
            mac.verify(digest)
        except InvalidSignature:
            continue
        return value
    logger.debug("Cookie signature did not match any configured secret")
    return None
