"""Unit tests for auth/validation.py and the AuthToken wire form in auth/models.py."""

from __future__ import annotations

import pytest

from auth.models import AuthToken
from auth.validation import canonical_address, canonical_username, validate_address, validate_username
from core.errors import InvalidInput


class TestUsername:
    @pytest.mark.parametrize("name", ["abc", "a" * 32, "Alice_01", "x-y_z", "ABC"])
    def test_legal(self, name):
        validate_username(name)

    @pytest.mark.parametrize("name", ["", "ab", "a" * 33, "al ice", "alice!", "ålice", "alice.b"])
    def test_illegal(self, name):
        with pytest.raises(InvalidInput):
            validate_username(name)

    def test_canonical_form(self):
        assert canonical_username("AlIcE") == "alice"


class TestAddress:
    @pytest.mark.parametrize("address", ["0x" + "0" * 40, "0x" + "aBcDeF" * 6 + "1234", "0X" + "f" * 40])
    def test_legal(self, address):
        validate_address(address)

    @pytest.mark.parametrize(
        "address",
        [
            "",
            "0x" + "0" * 39,
            "0x" + "0" * 41,
            "00" + "0" * 40,
            "0x" + "g" * 40,
            "0x" + " " * 40,
        ],
    )
    def test_illegal(self, address):
        with pytest.raises(InvalidInput):
            validate_address(address)

    def test_canonical_form(self):
        assert canonical_address("0X" + "AB" * 20) == "0x" + "ab" * 20


class TestAuthTokenWireForm:
    def test_serialize_is_decimal(self):
        assert AuthToken(18446744073709551615).serialize() == "18446744073709551615"

    def test_parse(self):
        assert AuthToken.parse(" 42 ") == AuthToken(42)

    @pytest.mark.parametrize("raw", ["", "-1", "abc", "1.5", "0x10", "18446744073709551616", "١٢"])
    def test_parse_rejects(self, raw):
        with pytest.raises(ValueError):
            AuthToken.parse(raw)

    def test_generate_is_in_range(self):
        token = AuthToken.generate()
        assert 0 <= token.value < 2**64

    def test_repr_hides_value(self):
        assert "42" not in repr(AuthToken(42))

    def test_hashable(self):
        assert len({AuthToken(1), AuthToken(1), AuthToken(2)}) == 2
