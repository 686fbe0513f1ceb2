import pytest

from gallery.auth.pins import KEY_LENGTH, create_pin_hash, is_valid_pin, verify_pin_hash
from gallery.errors import InvalidInput


def test_hash_has_salt_and_fixed_length_key():
    h = create_pin_hash("1234")
    salt, key = h.split(":")
    assert h.count(":") == 1
    assert len(bytes.fromhex(salt)) >= 16
    assert len(bytes.fromhex(key)) == KEY_LENGTH


def test_verify_accepts_the_right_pin_only():
    h = create_pin_hash("4321")
    assert verify_pin_hash("4321", h) is True
    assert verify_pin_hash("4322", h) is False
    assert verify_pin_hash("0000", h) is False


def test_same_pin_gets_a_fresh_salt_each_time():
    a = create_pin_hash("123456")
    b = create_pin_hash("123456")
    assert a != b
    assert verify_pin_hash("123456", a)
    assert verify_pin_hash("123456", b)


@pytest.mark.parametrize("bad", ["", None, 1234])
def test_create_rejects_empty_or_non_string(bad):
    with pytest.raises(InvalidInput):
        create_pin_hash(bad)


@pytest.mark.parametrize(
    "stored",
    [
        "",
        None,
        "nocolon",
        ":abcd",
        "abcd:",
        "a:b:c",
        "zz:zz",
        "00" * 16 + ":" + "00" * 10,  # key too short
        "00:" + "00" * KEY_LENGTH,  # salt too short for the KDF
    ],
)
def test_verify_is_false_for_malformed_hashes(stored):
    assert verify_pin_hash("1234", stored) is False


def test_tampered_key_fails():
    h = create_pin_hash("9876")
    salt, key = h.split(":")
    flipped = ("0" if key[0] != "0" else "1") + key[1:]
    assert verify_pin_hash("9876", f"{salt}:{flipped}") is False


@pytest.mark.parametrize("pin,ok", [("1234", True), ("0123456789", True), ("123", False), ("12345678901", False), ("12a4", False), (" 1234", False), (1234, False)])
def test_pin_shape(pin, ok):
    assert is_valid_pin(pin) is ok
