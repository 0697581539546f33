"""Token signing and verification for T-Bank (Tinkoff) acquiring requests and notifications."""
import hashlib
import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from tgshop.services.canonical import SIGNATURE_FIELD, canonicalize

log = logging.getLogger("tgshop.payments.signing")

PASSWORD_FIELD = "Password"


class SigningConvention(str, Enum):
    """Where the terminal password enters the signed string."""

    # Password is added as a field and sorted together with the others (gateway v2 docs)
    PASSWORD_FIELD = "password_field"
    # Password is appended to the end of the concatenated values
    TRAILING_SECRET = "trailing_secret"


def sign(
    fields: Mapping,
    secret: str,
    convention: SigningConvention | str = SigningConvention.PASSWORD_FIELD,
) -> str:
    """SHA-256 (lowercase hex) over the canonical string of `fields` plus the secret."""
    convention = SigningConvention(convention)
    if convention is SigningConvention.PASSWORD_FIELD:
        payload = canonicalize({**fields, PASSWORD_FIELD: secret})
    else:
        payload = canonicalize(fields) + secret
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def verify(
    fields: Mapping,
    secret: str,
    convention: SigningConvention | str = SigningConvention.PASSWORD_FIELD,
) -> bool:
    """
    Recompute the token over `fields` without Token and compare in constant time.
    Never raises: a missing token or an unserializable payload is simply invalid.
    """
    received = fields.get(SIGNATURE_FIELD)
    if not isinstance(received, str) or not received:
        return False
    unsigned = {key: value for key, value in fields.items() if key != SIGNATURE_FIELD}
    try:
        expected = sign(unsigned, secret, convention)
    except (TypeError, ValueError) as e:
        log.warning("Token verification skipped, payload not serializable: %s", e)
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


@dataclass(frozen=True)
class Signer:
    """Terminal password bound to one signing convention."""

    secret: str
    convention: SigningConvention = SigningConvention.PASSWORD_FIELD

    def sign(self, fields: Mapping) -> str:
        return sign(fields, self.secret, self.convention)

    def verify(self, fields: Mapping) -> bool:
        return verify(fields, self.secret, self.convention)

    def signed(self, fields: Mapping) -> dict:
        """Copy of `fields` with Token attached."""
        body = {key: value for key, value in fields.items() if key != SIGNATURE_FIELD}
        body[SIGNATURE_FIELD] = self.sign(body)
        return body
