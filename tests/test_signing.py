"""Token signing and verification."""
import hashlib

import pytest

from tgshop.services.signing import Signer, SigningConvention, sign, verify


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


FIELDS = {"TerminalKey": "T", "Amount": 100, "OrderId": "1"}


def test_password_field_convention():
    # Amount, OrderId, Password, TerminalKey
    assert sign(FIELDS, "pw") == _sha256("1001pwT")


def test_trailing_secret_convention():
    assert sign(FIELDS, "pw", SigningConvention.TRAILING_SECRET) == _sha256("1001T" + "pw")
    assert sign(FIELDS, "pw", "trailing_secret") == sign(FIELDS, "pw", SigningConvention.TRAILING_SECRET)


def test_conventions_differ():
    assert sign(FIELDS, "pw") != sign(FIELDS, "pw", SigningConvention.TRAILING_SECRET)


def test_lowercase_hex():
    token = sign(FIELDS, "pw")
    assert len(token) == 64
    assert token == token.lower()


@pytest.mark.parametrize("convention", list(SigningConvention))
def test_round_trip(convention):
    signer = Signer("secret", convention)
    body = signer.signed({"PaymentId": "700001", "Status": "CONFIRMED", "Success": True, "Amount": 2999000})
    assert signer.verify(body)
    # verification ignores key order
    assert signer.verify(dict(reversed(list(body.items()))))


def test_single_character_change_fails():
    body = Signer("secret").signed(FIELDS)
    token = body["Token"]
    for i in range(len(token)):
        flipped = token[:i] + ("0" if token[i] != "0" else "1") + token[i + 1:]
        assert not verify({**body, "Token": flipped}, "secret")


def test_tampered_field_fails():
    body = Signer("secret").signed(FIELDS)
    assert not verify({**body, "Amount": 101}, "secret")


def test_wrong_secret_fails():
    body = Signer("secret").signed(FIELDS)
    assert not verify(body, "other")


def test_missing_or_empty_token_fails():
    assert not verify(FIELDS, "secret")
    assert not verify({**FIELDS, "Token": ""}, "secret")
    assert not verify({**FIELDS, "Token": None}, "secret")


def test_unserializable_payload_is_invalid_not_error():
    assert not verify({"Amount": 1.5, "Token": "abc"}, "secret")


def test_signed_replaces_existing_token():
    signer = Signer("secret")
    body = signer.signed({**FIELDS, "Token": "stale"})
    assert body["Token"] == sign(FIELDS, "secret")
