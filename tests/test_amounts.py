"""
Test suite for amounts and addresses

Validates uint256 bounds and checked arithmetic. Amounts must never wrap.
"""

import pytest

from token_ledger.addresses import (
    ZERO_ADDRESS, is_valid_address, is_zero_address, normalize_address
)
from token_ledger.amounts import (
    MAX_UINT256, checked_add, checked_sub, is_amount, parse_amount, require_amount
)
from token_ledger.errors import (
    ArithmeticOverflow, InsufficientAllowance, InsufficientBalance, InvalidAmount
)


class TestAmountValidation:
    """Test amount range checks"""

    @pytest.mark.parametrize("value", [0, 1, 10 ** 18, MAX_UINT256])
    def test_valid_amounts(self, value):
        assert is_amount(value)
        assert require_amount(value) == value

    @pytest.mark.parametrize("value", [-1, MAX_UINT256 + 1, 1.0, "1", None, True, False])
    def test_invalid_amounts(self, value):
        assert not is_amount(value)
        with pytest.raises(InvalidAmount):
            require_amount(value)

    def test_max_uint256(self):
        assert MAX_UINT256 == 2 ** 256 - 1


class TestCheckedArithmetic:
    """Test overflow and underflow detection"""

    def test_add(self):
        assert checked_add(2, 3) == 5
        assert checked_add(MAX_UINT256 - 1, 1) == MAX_UINT256

    def test_add_overflow(self):
        with pytest.raises(ArithmeticOverflow, match="addition overflow"):
            checked_add(MAX_UINT256, 1)

    def test_sub(self):
        assert checked_sub(5, 3) == 2
        assert checked_sub(5, 5) == 0

    def test_sub_underflow_default_error(self):
        with pytest.raises(ArithmeticOverflow):
            checked_sub(1, 2)

    def test_sub_underflow_kind_specific(self):
        with pytest.raises(InsufficientBalance, match="exceeds balance"):
            checked_sub(1, 2, InsufficientBalance)

    def test_sub_underflow_custom_reason(self):
        with pytest.raises(InsufficientAllowance, match="below zero"):
            checked_sub(1, 2, InsufficientAllowance, "ERC20: decreased allowance below zero")


class TestParseAmount:
    """Test decimal string parsing at the API boundary"""

    def test_parse(self):
        assert parse_amount("15000") == 15000
        assert parse_amount(" 42 ") == 42
        assert parse_amount(str(MAX_UINT256)) == MAX_UINT256

    @pytest.mark.parametrize("text", ["", "-1", "1.5", "1e3", "abc", str(MAX_UINT256 + 1), "²"])
    def test_parse_invalid(self, text):
        with pytest.raises(InvalidAmount):
            parse_amount(text)


class TestAddresses:
    """Test account identifier helpers"""

    def test_zero_address(self):
        assert ZERO_ADDRESS == "0x0000000000000000000000000000000000000000"
        assert is_zero_address(ZERO_ADDRESS)
        assert is_zero_address(None)
        assert is_zero_address("")
        assert not is_zero_address("0x" + "1" * 40)

    def test_normalize(self):
        mixed = "0xAbCdEf" + "0" * 34
        assert normalize_address(mixed) == mixed.lower()

    @pytest.mark.parametrize("value", ["", "0x123", "1" * 42, "0x" + "g" * 40, "0x" + "1" * 41])
    def test_invalid_addresses(self, value):
        assert not is_valid_address(value)
        with pytest.raises(ValueError, match="Invalid address"):
            normalize_address(value)
