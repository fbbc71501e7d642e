import pytest

from hubsession.signing import sign, unsign


def test_signed_value_verifies():
    signed = sign("session-id", "some_secret")
    assert signed.startswith("session-id.")
    assert not signed.endswith("=")
    assert unsign(signed, "some_secret") == "session-id"


def test_wrong_secret_is_rejected():
    assert unsign(sign("session-id", "some_secret"), "other_secret") is None


def test_tampered_value_is_rejected():
    signed = sign("session-id", "some_secret")
    forged = "other-id" + signed[len("session-id"):]
    assert unsign(forged, "some_secret") is None


def test_rotated_secrets():
    signed = sign("session-id", "old")
    assert unsign(signed, ["new", "old"]) == "session-id"
    assert unsign(signed, ["new"]) is None


@pytest.mark.parametrize("value", ["no-signature", ".sig-only", "id.!!!not-base64!!!"])
def test_malformed_values_are_rejected(value):
    assert unsign(value, "some_secret") is None


def test_empty_secret_is_a_configuration_error():
    with pytest.raises(ValueError):
        sign("session-id", "")
    with pytest.raises(ValueError):
        unsign(sign("session-id", "x"), [])
