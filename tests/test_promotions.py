import datetime as dt
from decimal import Decimal

import pytest

from childcare_backend.app.db import get_session
from childcare_backend.app.errors import InvalidPromotion, PromotionExhausted, PromotionNotFound
from childcare_backend.app.models import Promotion
from childcare_backend.app.promotions import (
    calculate_discount,
    check_promotion_eligibility,
    find_promotion_by_code,
    format_discount,
    is_expiring_soon,
    promotion_status,
    redeem_promotion,
    release_promotion,
)
from childcare_backend.app.states import DiscountType

TODAY = dt.date(2025, 3, 10)


def _promo(**kw):
    base = dict(
        title="Promo",
        discount_type=DiscountType.percentage,
        discount_value=Decimal("20"),
        start_date=dt.date(2025, 3, 1),
        end_date=dt.date(2025, 3, 31),
        max_uses=None,
        used_count=0,
        applicable_service_ids=[],
        min_age=None,
        max_age=None,
        is_active=True,
    )
    base.update(kw)
    return Promotion(**base)


class TestEligibility:
    def test_valid_promotion(self):
        result = check_promotion_eligibility(_promo(), 1, 18, today=TODAY)
        assert result.valid is True
        assert result.reason is None

    def test_inactive_reason_wins_over_everything(self):
        promo = _promo(is_active=False, end_date=dt.date(2025, 3, 5), max_uses=1, used_count=1)
        result = check_promotion_eligibility(promo, 1, 18, today=TODAY)
        assert not result
        assert result.reason == "Promotion is not active"

    def test_not_started_and_expired_have_distinct_reasons(self):
        early = check_promotion_eligibility(_promo(start_date=dt.date(2025, 3, 11)), 1, 18, today=TODAY)
        late = check_promotion_eligibility(_promo(end_date=dt.date(2025, 3, 9)), 1, 18, today=TODAY)
        assert early.reason == "Promotion has not started yet"
        assert late.reason == "Promotion has expired"

    def test_end_date_is_inclusive(self):
        assert check_promotion_eligibility(_promo(end_date=TODAY), 1, 18, today=TODAY)

    def test_usage_limit(self):
        result = check_promotion_eligibility(_promo(max_uses=5, used_count=5), 1, 18, today=TODAY)
        assert result.reason == "Promotion usage limit reached"

    def test_service_restriction(self):
        promo = _promo(applicable_service_ids=[2, 3])
        assert check_promotion_eligibility(promo, 2, 18, today=TODAY)
        result = check_promotion_eligibility(promo, 1, 18, today=TODAY)
        assert result.reason == "Promotion does not apply to this service"

    def test_age_bounds_are_inclusive(self):
        promo = _promo(min_age=12, max_age=24)
        assert check_promotion_eligibility(promo, 1, 12, today=TODAY)
        assert check_promotion_eligibility(promo, 1, 24, today=TODAY)
        assert not check_promotion_eligibility(promo, 1, 11, today=TODAY)
        assert not check_promotion_eligibility(promo, 1, 25, today=TODAY)

    def test_malformed_dates_raise(self):
        promo = _promo(start_date=dt.date(2025, 4, 1), end_date=dt.date(2025, 3, 1))
        with pytest.raises(InvalidPromotion):
            check_promotion_eligibility(promo, 1, 18, today=TODAY)


class TestDiscount:
    def test_percentage(self):
        result = calculate_discount(_promo(), 200)
        assert result.discount_amount == Decimal("40")
        assert result.final_price == Decimal("160")
        assert result.is_free_service is False

    def test_fixed_amount_never_goes_negative(self):
        promo = _promo(discount_type=DiscountType.fixed_amount, discount_value=Decimal("250"))
        result = calculate_discount(promo, 200)
        assert result.final_price == 0
        assert result.discount_amount == Decimal("200")

    def test_free_service(self):
        promo = _promo(discount_type=DiscountType.free_service, discount_value=Decimal("0"))
        result = calculate_discount(promo, Decimal("450"))
        assert result.final_price == 0
        assert result.discount_amount == Decimal("450")
        assert result.is_free_service is True

    def test_format_discount(self):
        assert format_discount(_promo()) == "20% off"
        assert format_discount(_promo(discount_type=DiscountType.fixed_amount,
                                      discount_value=Decimal("50"))) == "S/ 50.00 off"


class TestStatusHelpers:
    def test_promotion_status(self):
        assert promotion_status(_promo(), TODAY) == "active"
        assert promotion_status(_promo(start_date=dt.date(2025, 4, 1), end_date=dt.date(2025, 4, 30)), TODAY) == "scheduled"
        assert promotion_status(_promo(end_date=dt.date(2025, 3, 1)), TODAY) == "expired"
        assert promotion_status(_promo(is_active=False), TODAY) == "inactive"

    def test_is_expiring_soon(self):
        assert is_expiring_soon(_promo(end_date=dt.date(2025, 3, 15)), TODAY)
        assert not is_expiring_soon(_promo(), TODAY)


class TestRedemption:
    def test_redeem_up_to_max_uses(self, make_promotion):
        promo = make_promotion(max_uses=2)
        with get_session() as s:
            redeem_promotion(s, promo.id)
        with get_session() as s:
            redeem_promotion(s, promo.id)
        with pytest.raises(PromotionExhausted):
            with get_session() as s:
                redeem_promotion(s, promo.id)
        with get_session() as s:
            assert s.get(Promotion, promo.id).used_count == 2

    def test_unlimited_promotion(self, make_promotion):
        promo = make_promotion(max_uses=None)
        for _ in range(3):
            with get_session() as s:
                redeem_promotion(s, promo.id)
        with get_session() as s:
            assert s.get(Promotion, promo.id).used_count == 3

    def test_release_floors_at_zero(self, make_promotion):
        promo = make_promotion(used_count=1)
        for _ in range(2):
            with get_session() as s:
                release_promotion(s, promo.id)
        with get_session() as s:
            assert s.get(Promotion, promo.id).used_count == 0

    def test_find_by_code(self, make_promotion):
        make_promotion(code="SPRING")
        with get_session() as s:
            assert find_promotion_by_code(s, " SPRING ").promo_code == "SPRING"
            with pytest.raises(PromotionNotFound):
                find_promotion_by_code(s, "NOPE")
