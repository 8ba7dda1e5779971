from decimal import Decimal

import pytest

from childcare_backend.app.errors import InvalidPrice, InvalidSessionCount
from childcare_backend.app.pricing import (
    calculate_session_price,
    describe_pricing,
    format_price,
    session_options,
)


class TestCalculateSessionPrice:
    def test_base_tier_is_base_price(self):
        result = calculate_session_price(450, 8)
        assert result.total_price == Decimal("450")
        assert result.additional_sessions == 0
        assert result.additional_price == 0

    def test_one_extra_block_adds_twenty_percent(self):
        result = calculate_session_price(450, 12)
        assert result.total_price == Decimal("540")
        assert result.base_sessions == 8
        assert result.additional_sessions == 4
        assert result.additional_price == Decimal("90")

    def test_two_extra_blocks(self):
        result = calculate_session_price(450, 16)
        assert result.total_price == Decimal("630")

    def test_fewer_sessions_are_proportional(self):
        result = calculate_session_price(450, 4)
        assert result.total_price == Decimal("225")
        assert result.base_sessions == 4
        assert result.base_price == Decimal("450")
        assert result.additional_price == Decimal("-225")
        assert result.base_price + result.additional_price == result.total_price

    def test_string_and_float_inputs_are_exact(self):
        assert calculate_session_price("99.90", 12).total_price == Decimal("119.88")
        assert calculate_session_price(99.9, 8).total_price == Decimal("99.9")

    def test_zero_base_price(self):
        assert calculate_session_price(0, 12).total_price == 0

    @pytest.mark.parametrize("sessions", [0, 3, 6, 10, -4])
    def test_rejects_bad_session_counts(self, sessions):
        with pytest.raises(InvalidSessionCount):
            calculate_session_price(450, sessions)

    def test_rejects_non_integer_sessions(self):
        with pytest.raises(InvalidSessionCount):
            calculate_session_price(450, 8.0)

    def test_rejects_negative_price(self):
        with pytest.raises(InvalidPrice):
            calculate_session_price(-1, 8)

    def test_rejects_garbage_price(self):
        with pytest.raises(InvalidPrice):
            calculate_session_price("abc", 8)

    def test_to_dict_serialises_money_as_strings(self):
        data = calculate_session_price(450, 12).to_dict()
        assert Decimal(data["total_price"]) == Decimal("540")
        assert data["total_sessions"] == 12


class TestDescriptions:
    def test_describe_pricing(self):
        assert describe_pricing(8, 450) == "Base price: S/ 450.00"
        assert describe_pricing(4, 450) == "50% of base price: S/ 225.00"
        assert describe_pricing(12, 450) == "Base price + 20%: S/ 540.00"

    def test_format_price(self):
        assert format_price(Decimal("432")) == "S/ 432.00"

    def test_session_options(self):
        options = session_options()
        assert [o["value"] for o in options] == [4, 8, 12, 16, 20]
        assert options[0]["description"] == "1 per week (50% of base price)"
        assert options[2]["description"] == "3 per week (+20% of base price)"
