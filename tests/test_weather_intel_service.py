"""
Tests for the per-property weather intel pipeline.
"""

from datetime import date

import httpx
import pytest

from stormintel.core.errors import ErrorCode, InvalidLocationError
from stormintel.models import EventType, TrackedProperty
from stormintel.services.weather_intel_service import WeatherIntelPipeline

from storm_helpers import ALERTS, REPORTS, FakeAdapter, make_record, utc


def storm_day_adapters():
    """Golf ball hail 1.2 miles away, confirmed by a warning the same afternoon."""
    alerts = FakeAdapter(ALERTS, [
        make_record(
            "warn-1", utc(2024, 5, 10, 21, 30), event_type=EventType.WARNING, source=ALERTS,
            miles=0.5, label="Severe Thunderstorm Warning", ended_at=utc(2024, 5, 10, 22, 15),
        ),
    ])
    reports = FakeAdapter(REPORTS, [
        make_record("hail-1", utc(2024, 5, 10, 22), magnitude=1.75, miles=1.2, label="Hail 1.75\""),
        make_record("hail-2", utc(2024, 4, 2, 20), magnitude=0.75, miles=6.0, label="Hail 0.75\""),
    ])
    return alerts, reports


class TestWeatherIntelPipeline:

    @pytest.mark.asyncio
    async def test_corroborated_storm_day(self, dallas_property, window):
        alerts, reports = storm_day_adapters()
        pipeline = WeatherIntelPipeline([alerts, reports])

        result = await pipeline.run(dallas_property, window)
        intel = result.intel

        assert intel.recommended_dol == date(2024, 5, 10)
        # 0.74375 with two sources on the day
        assert intel.dol_confidence_percent == 74
        assert intel.dol_confidence == "HIGH"
        assert intel.corroborating_sources == ["NWS SPC Preliminary Storm Reports", "NWS Severe Weather Alerts"]
        assert intel.hail.max_size_inches == 1.75
        assert intel.event_count == 3
        assert intel.storm_window_start == utc(2024, 5, 10, 21, 30)
        assert intel.storm_window_end == utc(2024, 5, 10, 22, 15)
        assert intel.degraded is False
        assert result.failed_sources == []
        assert result.recommendation.primary_event.id == "ground_truth_reports:hail-1"

    @pytest.mark.asyncio
    async def test_failed_source_is_contained(self, dallas_property, window):
        _, reports = storm_day_adapters()
        broken = FakeAdapter(ALERTS, error=httpx.ConnectError("connection refused"))
        pipeline = WeatherIntelPipeline([broken, reports])

        result = await pipeline.run(dallas_property, window)

        assert result.intel.sources == ["NWS SPC Preliminary Storm Reports"]
        assert result.intel.unavailable_sources == ["NWS Severe Weather Alerts"]
        assert result.failed_sources == ["severe_weather_alerts"]
        assert result.intel.recommended_dol == date(2024, 5, 10)
        assert result.intel.dol_confidence_percent == 63
        assert result.intel.degraded is False

    @pytest.mark.asyncio
    async def test_slow_source_times_out_in_interactive_mode(self, dallas_property, window):
        alerts, reports = storm_day_adapters()
        alerts.delay = 5.0
        pipeline = WeatherIntelPipeline([alerts, reports])

        result = await pipeline.run(dallas_property, window, timeout=0.05, interactive=True)

        status = {s.source: s for s in result.source_statuses}
        assert status[ALERTS].available is False
        assert status[ALERTS].error_code == ErrorCode.TIMEOUT
        assert result.intel.degraded is True
        assert result.intel.recommended_dol == date(2024, 5, 10)

    @pytest.mark.asyncio
    async def test_invalid_location(self, window):
        pipeline = WeatherIntelPipeline([FakeAdapter(REPORTS)])

        with pytest.raises(InvalidLocationError):
            await pipeline.run(TrackedProperty(id="no-coords"), window)
        with pytest.raises(InvalidLocationError):
            await pipeline.run(TrackedProperty(id="bad", lat=91.0, lng=0.0), window)

    @pytest.mark.asyncio
    async def test_no_events(self, dallas_property, window):
        pipeline = WeatherIntelPipeline([FakeAdapter(ALERTS), FakeAdapter(REPORTS)])

        intel = (await pipeline.run(dallas_property, window)).intel

        assert intel.recommended_dol is None
        assert intel.dol_confidence is None
        assert intel.event_count == 0
        assert len(intel.sources) == 2

    @pytest.mark.asyncio
    async def test_events_outside_window_are_ignored(self, dallas_property, window):
        reports = FakeAdapter(REPORTS, [
            make_record("old", utc(2023, 9, 1, 22), magnitude=2.0, miles=0.5),
        ])
        pipeline = WeatherIntelPipeline([reports])

        intel = (await pipeline.run(dallas_property, window)).intel

        assert intel.recommended_dol is None
        assert intel.event_count == 0

    @pytest.mark.asyncio
    async def test_rerun_is_identical(self, dallas_property, window):
        pipeline = WeatherIntelPipeline(list(storm_day_adapters()))

        first = await pipeline.run(dallas_property, window)
        second = await pipeline.run(dallas_property, window)

        assert first.intel.model_dump() == second.intel.model_dump()
