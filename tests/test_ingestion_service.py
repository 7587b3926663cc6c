"""
Tests for batch and on-demand ingestion.
"""

from datetime import date

import httpx
import pytest

from stormintel.core.errors import ErrorCode, InvalidLocationError
from stormintel.models import TrackedProperty
from stormintel.services.ingestion_service import IngestionService
from stormintel.services.property_store import InMemoryPropertyStore
from stormintel.services.weather_intel_service import WeatherIntelPipeline

from storm_helpers import ALERTS, PROPERTY_LAT, PROPERTY_LNG, REPORTS, FakeAdapter, make_record, utc


class ExplodingPipeline(WeatherIntelPipeline):
    """Pipeline that blows up for one property id."""

    def __init__(self, adapters, bad_id):
        super().__init__(adapters)
        self.bad_id = bad_id

    async def run(self, tracked_property, window, **kwargs):
        if tracked_property.id == self.bad_id:
            raise RuntimeError("unexpected parser failure")
        return await super().run(tracked_property, window, **kwargs)


def portfolio():
    return [
        TrackedProperty(id="prop-1", lat=PROPERTY_LAT, lng=PROPERTY_LNG, address="Dallas, TX"),
        TrackedProperty(id="prop-2", lat=PROPERTY_LAT + 0.01, lng=PROPERTY_LNG),
        TrackedProperty(id="prop-no-coords", address="Unknown"),
    ]


def adapters():
    reports = FakeAdapter(REPORTS, [make_record("hail-1", utc(2024, 5, 10, 22), magnitude=1.75, miles=1.2)])
    alerts = FakeAdapter(ALERTS)
    return [alerts, reports]


@pytest.fixture
def store():
    return InMemoryPropertyStore(portfolio())


def make_service(store, now, pipeline=None, **kwargs):
    return IngestionService(pipeline or WeatherIntelPipeline(adapters()), store, clock=lambda: now, **kwargs)


class TestBatchIngestion:

    @pytest.mark.asyncio
    async def test_invalid_property_does_not_stop_batch(self, store, now):
        summary = await make_service(store, now).run_batch()

        assert summary.run_date == date(2024, 6, 1)
        assert summary.count == 3
        assert summary.succeeded == 2
        assert summary.failed == 1
        assert sorted(summary.updated) == ["prop-1", "prop-2"]

        failed = next(o for o in summary.outcomes if o.status == "failed")
        assert failed.property_id == "prop-no-coords"
        assert failed.error_code == ErrorCode.INVALID_LOCATION

    @pytest.mark.asyncio
    async def test_results_are_stored(self, store, now):
        await make_service(store, now).run_batch()

        result = await store.get_run_result("prop-1", date(2024, 6, 1))
        assert result.intel.recommended_dol == date(2024, 5, 10)
        assert result.failed_sources == []

        tracked = {p.id: p for p in await store.get_tracked_properties()}
        assert tracked["prop-1"].last_ingested_at == now
        assert tracked["prop-no-coords"].last_ingested_at is None

    @pytest.mark.asyncio
    async def test_unexpected_error_is_isolated(self, store, now):
        pipeline = ExplodingPipeline(adapters(), bad_id="prop-1")

        summary = await make_service(store, now, pipeline=pipeline).run_batch()

        outcomes = {o.property_id: o for o in summary.outcomes}
        assert outcomes["prop-1"].status == "failed"
        assert "unexpected parser failure" in outcomes["prop-1"].error
        assert outcomes["prop-2"].status == "succeeded"

    @pytest.mark.asyncio
    async def test_failed_sources_are_recorded(self, store, now):
        reports = FakeAdapter(REPORTS, [make_record("hail-1", utc(2024, 5, 10, 22), magnitude=1.75, miles=1.2)])
        broken = FakeAdapter(ALERTS, error=httpx.ConnectError("connection refused"))
        pipeline = WeatherIntelPipeline([broken, reports])

        summary = await make_service(store, now, pipeline=pipeline).run_batch()

        outcome = next(o for o in summary.outcomes if o.property_id == "prop-1")
        assert outcome.status == "succeeded"
        assert outcome.failed_sources == ["severe_weather_alerts"]
        result = await store.get_run_result("prop-1", date(2024, 6, 1))
        assert result.failed_sources == ["severe_weather_alerts"]
        assert result.intel.degraded is False

    @pytest.mark.asyncio
    async def test_rerun_replaces_result(self, store, now):
        service = make_service(store, now)

        await service.run_batch()
        first = await store.get_run_result("prop-1", date(2024, 6, 1))
        await service.run_batch()
        second = await store.get_run_result("prop-1", date(2024, 6, 1))

        assert store.result_count() == 2
        assert first == second

    @pytest.mark.asyncio
    async def test_properties_past_deadline_are_deferred(self, store, now):
        summary = await make_service(store, now, batch_timeout_seconds=0).run_batch()

        assert summary.deferred == 3
        assert summary.succeeded == 0
        assert store.result_count() == 0

    @pytest.mark.asyncio
    async def test_parallelism_is_bounded(self, now):
        slow = FakeAdapter(REPORTS, delay=0.02)
        store = InMemoryPropertyStore(
            TrackedProperty(id=f"prop-{i}", lat=PROPERTY_LAT, lng=PROPERTY_LNG) for i in range(6)
        )

        summary = await make_service(store, now, pipeline=WeatherIntelPipeline([slow]), workers=2).run_batch()

        assert summary.succeeded == 6
        assert slow.calls == 6
        assert slow.max_active == 2

    @pytest.mark.asyncio
    async def test_empty_portfolio(self, now):
        summary = await make_service(InMemoryPropertyStore(), now).run_batch()

        assert summary.count == 0
        assert summary.outcomes == []

    def test_workers_must_be_positive(self, store):
        with pytest.raises(ValueError):
            IngestionService(WeatherIntelPipeline([]), store, workers=0)


class TestOnDemandIngestion:

    @pytest.mark.asyncio
    async def test_returns_intel(self, store, now):
        intel = await make_service(store, now).run_on_demand(PROPERTY_LAT, PROPERTY_LNG, address="Dallas, TX")

        assert intel.address == "Dallas, TX"
        assert intel.recommended_dol == date(2024, 5, 10)
        assert intel.days_searched == 120
        assert store.result_count() == 0

    @pytest.mark.asyncio
    async def test_custom_lookback(self, store, now):
        intel = await make_service(store, now).run_on_demand(PROPERTY_LAT, PROPERTY_LNG, days=7)

        assert intel.days_searched == 7
        assert intel.recommended_dol is None

    @pytest.mark.asyncio
    async def test_invalid_location_is_raised(self, store, now):
        with pytest.raises(InvalidLocationError):
            await make_service(store, now).run_on_demand(None, PROPERTY_LNG)

    @pytest.mark.asyncio
    async def test_slow_feed_degrades_result(self, store, now):
        reports = FakeAdapter(REPORTS, [make_record("hail-1", utc(2024, 5, 10, 22), magnitude=1.75, miles=1.2)])
        slow = FakeAdapter(ALERTS, delay=5.0)
        service = make_service(
            store, now, pipeline=WeatherIntelPipeline([slow, reports]), on_demand_timeout_seconds=0.05
        )

        intel = await service.run_on_demand(PROPERTY_LAT, PROPERTY_LNG)

        assert intel.degraded is True
        assert intel.unavailable_sources == ["NWS Severe Weather Alerts"]
        assert intel.recommended_dol == date(2024, 5, 10)
