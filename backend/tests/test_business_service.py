"""Tests for business service pricing, capacity and timelines."""

import pytest

from coffee_export.core.exceptions import EntityValidationError
from coffee_export.schemas.business_service import BusinessService

from conftest import STAFF_ID, build_service_payload


@pytest.fixture
def service(clock, ids) -> BusinessService:
    return BusinessService.create(build_service_payload(), created_by=STAFF_ID, clock=clock, ids=ids)


def _with_pricing(clock, ids, **pricing) -> BusinessService:
    payload = build_service_payload()
    payload["pricing"] = {**payload["pricing"], **pricing}
    return BusinessService.create(payload, created_by=STAFF_ID, clock=clock, ids=ids)


class TestEstimatedPrice:
    def test_flat_fee_without_quantity(self, service):
        assert service.calculate_estimated_price() == pytest.approx(100)

    def test_per_unit_below_discount(self, service):
        assert service.calculate_estimated_price(50) == pytest.approx(5_000)

    def test_volume_discount(self, service):
        assert service.calculate_estimated_price(200) == pytest.approx(18_000)

    def test_rush_surcharge(self, service):
        assert service.calculate_estimated_price(200, rush=True) == pytest.approx(22_500)

    def test_rush_ignored_when_unavailable(self, clock, ids):
        payload = build_service_payload()
        payload["timeline"] = {**payload["timeline"], "rush_available": False}
        service = BusinessService.create(payload, created_by=STAFF_ID, clock=clock, ids=ids)
        assert service.calculate_estimated_price(50, rush=True) == pytest.approx(5_000)

    def test_custom_quote_has_no_estimate(self, clock, ids):
        service = _with_pricing(clock, ids, custom_quote_required=True)
        assert service.requires_custom_quote() is True
        assert service.calculate_estimated_price(50) is None

    def test_no_base_price_has_no_estimate(self, clock, ids):
        service = _with_pricing(clock, ids, model="PROJECT_BASED", base_price=None)
        assert service.calculate_estimated_price(50) is None

    def test_consultation_requires_custom_quote(self, clock, ids):
        payload = build_service_payload(requires_consultation=True)
        service = BusinessService.create(payload, created_by=STAFF_ID, clock=clock, ids=ids)
        assert service.requires_custom_quote() is True


class TestCapacity:
    def test_volume_within_limits(self, service):
        assert service.can_handle_volume(5) is True
        assert service.can_handle_volume(300) is True

    def test_volume_below_minimum(self, service):
        assert service.can_handle_volume(4) is False

    def test_volume_above_monthly_capacity(self, service):
        # maximum_order is 500 but capacity caps at 300
        assert service.can_handle_volume(400) is False

    def test_available_for_quote(self, service, clock):
        assert service.is_available_for_quote() is True
        hidden = service.touched(clock, STAFF_ID, available_for_quote=False)
        assert hidden.is_available_for_quote() is False


class TestTimeline:
    def test_standard_timeline(self, service):
        estimate = service.get_estimated_delivery_time()
        assert (estimate.min, estimate.average, estimate.max) == (10, 21, 30)

    def test_rush_halves_and_rounds_up(self, service):
        estimate = service.get_estimated_delivery_time(rush=True)
        assert (estimate.min, estimate.average, estimate.max) == (5, 11, 15)

    def test_update_timeline_validates_day_order(self, service, clock):
        with pytest.raises(EntityValidationError):
            service.update_timeline(
                {"minimum_days": 20, "maximum_days": 30, "average_days": 10}, STAFF_ID, clock
            )

    def test_update_timeline(self, service, clock):
        updated = service.update_timeline(
            {"minimum_days": 5, "maximum_days": 15, "average_days": 10}, STAFF_ID, clock
        )
        assert updated.get_estimated_delivery_time(rush=True).min == 5
        assert updated.timeline.rush_available is False


class TestCoverageAndLocalization:
    def test_geography(self, service, clock):
        assert service.supports_geography("DE") is True
        assert service.supports_geography("US") is False
        capabilities = {**service.capabilities.model_dump(), "geographic_coverage": ["GLOBAL"]}
        worldwide = service.touched(clock, STAFF_ID, capabilities=capabilities)
        assert worldwide.supports_geography("US") is True

    def test_certification(self, service):
        assert service.supports_certification("ORGANIC") is True
        assert service.supports_certification("HALAL") is False

    def test_process_steps_sorted_and_localized(self, service):
        steps = service.get_process_steps("ja")
        assert [s["step_number"] for s in steps] == [1, 2]
        assert steps[0]["name"] == "サンプリング"
        assert steps[1]["name"] == "Production"
        assert steps[0]["client_involvement_required"] is True

    def test_localized_name(self, service):
        assert service.get_localized_name("ja") == "OEM製造"
        assert service.get_localized_name("ko") == "OEM Manufacturing"
