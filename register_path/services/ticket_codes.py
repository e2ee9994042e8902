"""
Ticket code generation and QR verification payloads.
"""

import hashlib
import hmac
import secrets
import time
from typing import Callable, Optional
from urllib.parse import parse_qs, urlsplit

from ..config import get_settings

CODE_PREFIX = "RP"
SIGNATURE_LENGTH = 16
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


class TicketCodeGenerator:
    """
    Mints human-readable ticket codes and the signed URL encoded into each QR code.

    Codes look like ``RP-<base36 millisecond timestamp>-<8 random hex chars>``,
    upper-cased. The random part comes from a CSPRNG so codes cannot be guessed
    from one another.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        secret_key: Optional[str] = None,
        random_bytes: Callable[[int], bytes] = secrets.token_bytes,
        clock: Callable[[], float] = time.time,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.base_url).rstrip("/")
        self._secret = (secret_key or settings.SECRET_KEY).encode()
        self._random_bytes = random_bytes
        self._clock = clock

    def generate_code(self) -> str:
        millis = int(self._clock() * 1000)
        return f"{CODE_PREFIX}-{to_base36(millis)}-{self._random_bytes(4).hex()}".upper()

    def sign(self, code: str) -> str:
        digest = hmac.new(self._secret, code.encode(), hashlib.sha256).hexdigest()
        return digest[:SIGNATURE_LENGTH]

    def generate_verification_payload(self, code: str) -> str:
        """Deterministic URL a scanner opens to verify ``code``."""
        return f"{self.base_url}/api/v1/tickets/{code}/verify?sig={self.sign(code)}"

    def verify_payload(self, payload: str) -> Optional[str]:
        """Return the ticket code carried by ``payload`` if its signature checks out."""
        parts = urlsplit(payload)
        segments = [segment for segment in parts.path.split("/") if segment]
        if len(segments) < 2 or segments[-1] != "verify":
            return None

        code = segments[-2]
        signatures = parse_qs(parts.query).get("sig")
        if not signatures:
            return None

        if hmac.compare_digest(signatures[0], self.sign(code)):
            return code
        return None
