"""
Tests for the NWS alerts feed adapter.
"""

import httpx
import pytest

from stormintel.core.errors import ErrorCode
from stormintel.models import BoundingBox, EventType
from stormintel.services.event_normalizer import normalize
from stormintel.services.nws_alerts_service import NWSAlertsAdapter
from stormintel.services.retry_policy import RetryPolicy
from stormintel.services.weather_intel_service import WeatherIntelPipeline

from storm_helpers import ALERTS, PROPERTY_LAT, PROPERTY_LNG, REPORTS, FakeAdapter, make_record, utc

BASE_URL = "https://nws.test"


def alert_feature(alert_id, event, onset="2024-05-10T16:30:00-05:00", center=(PROPERTY_LAT, PROPERTY_LNG),
                  parameters=None, description="", headline=""):
    geometry = None
    if center is not None:
        lat, lng = center
        ring = [
            [lng - 0.05, lat - 0.05],
            [lng + 0.05, lat - 0.05],
            [lng + 0.05, lat + 0.05],
            [lng - 0.05, lat + 0.05],
            [lng - 0.05, lat - 0.05],
        ]
        geometry = {"type": "Polygon", "coordinates": [ring]}

    return {
        "id": f"{BASE_URL}/alerts/{alert_id}",
        "type": "Feature",
        "geometry": geometry,
        "properties": {
            "id": alert_id,
            "event": event,
            "sent": "2024-05-10T16:25:00-05:00",
            "onset": onset,
            "ends": "2024-05-10T17:15:00-05:00",
            "severity": "Severe",
            "areaDesc": "Dallas, TX",
            "headline": headline,
            "description": description,
            "parameters": parameters or {},
        },
    }


def make_adapter(handler, max_retries=0) -> NWSAlertsAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NWSAlertsAdapter(
        client,
        retry_policy=RetryPolicy(max_retries=max_retries, base_delay=0, max_delay=0),
        base_url=BASE_URL,
        user_agent="(test, test@example.com)",
    )


@pytest.fixture
def bbox():
    return BoundingBox.around(PROPERTY_LAT, PROPERTY_LNG, 0.5)


class TestNWSAlertsAdapter:

    @pytest.mark.asyncio
    async def test_maps_alerts_to_records(self, bbox):
        features = [
            alert_feature(
                "warn-1", "Severe Thunderstorm Warning",
                parameters={"maxHailSize": ["1.75"], "maxWindGust": ["70 MPH"]},
            ),
            alert_feature("watch-1", "Tornado Watch"),
            alert_feature("sws-1", "Severe Weather Statement"),
        ]

        def handler(request):
            return httpx.Response(200, json={"features": features})

        records = await make_adapter(handler).fetch(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        by_id = {r.source_id: r for r in records}
        warning = by_id["warn-1"]
        assert warning.source == ALERTS
        assert warning.type == EventType.WARNING
        assert warning.magnitude is None
        assert warning.lat == pytest.approx(PROPERTY_LAT)
        assert warning.lng == pytest.approx(PROPERTY_LNG)
        assert warning.occurred_at == utc(2024, 5, 10, 21, 30)
        assert warning.ended_at == utc(2024, 5, 10, 22, 15)
        assert warning.label == 'Severe Thunderstorm Warning (1.75" hail, 70 mph gusts)'
        assert warning.raw["max_hail_size_inches"] == 1.75
        assert warning.raw["max_wind_gust_mph"] == 70.0
        assert warning.raw["areaDesc"] == "Dallas, TX"

        assert by_id["watch-1"].type == EventType.WATCH
        assert by_id["sws-1"].type == EventType.STORM

    @pytest.mark.asyncio
    async def test_request_shape(self, bbox):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"features": []})

        await make_adapter(handler).fetch(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        request = seen[0]
        assert request.url.path == "/alerts"
        assert request.url.params["point"] == f"{PROPERTY_LAT:.4f},{PROPERTY_LNG:.4f}"
        assert request.url.params["status"] == "actual"
        assert "Severe Thunderstorm Warning" in request.url.params["event"]
        assert request.headers["User-Agent"] == "(test, test@example.com)"

    @pytest.mark.asyncio
    async def test_hazards_parsed_from_text(self, bbox):
        feature = alert_feature(
            "warn-2", "Severe Thunderstorm Warning",
            description="Quarter size hail and 60 mph wind gusts expected.",
        )

        def handler(request):
            return httpx.Response(200, json={"features": [feature]})

        records = await make_adapter(handler).fetch(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        assert records[0].raw["max_hail_size_inches"] == 1.0
        assert records[0].raw["max_wind_gust_mph"] == 60.0

    @pytest.mark.asyncio
    async def test_follows_pagination(self, bbox):
        next_url = f"{BASE_URL}/alerts?cursor=abc"
        urls = []

        def handler(request):
            urls.append(str(request.url))
            if "cursor" in str(request.url):
                return httpx.Response(200, json={"features": [alert_feature("p2", "Tornado Warning")]})
            return httpx.Response(200, json={
                "features": [alert_feature("p1", "Tornado Warning")],
                "pagination": {"next": next_url},
            })

        records = await make_adapter(handler).fetch(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        assert [r.source_id for r in records] == ["p1", "p2"]
        assert urls[1] == next_url

    @pytest.mark.asyncio
    async def test_alerts_outside_box_are_dropped(self, bbox):
        features = [
            alert_feature("near", "Tornado Warning"),
            alert_feature("houston", "Tornado Warning", center=(29.7604, -95.3698)),
        ]

        def handler(request):
            return httpx.Response(200, json={"features": features})

        records = await make_adapter(handler).fetch(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        assert [r.source_id for r in records] == ["near"]

    @pytest.mark.asyncio
    async def test_zone_only_alert_is_rejected_downstream(self, bbox):
        def handler(request):
            return httpx.Response(200, json={"features": [alert_feature("zone", "Tornado Watch", center=None)]})

        result = await make_adapter(handler).collect(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        assert result.status.available is True
        assert result.records[0].lat is None
        normalized = normalize({ALERTS: result.records})
        assert normalized.events == []
        assert normalized.rejected == 1

    @pytest.mark.asyncio
    async def test_server_errors_are_retried_then_contained(self, bbox):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        result = await make_adapter(handler, max_retries=2).collect(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        assert len(calls) == 3
        assert result.records == []
        assert result.status.available is False
        assert result.status.error_code == ErrorCode.SOURCE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_throttling_is_reported_as_rate_limited(self, bbox):
        def handler(request):
            return httpx.Response(429)

        result = await make_adapter(handler).collect(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        assert result.status.error_code == ErrorCode.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_connection_error_recovers_on_retry(self, bbox):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"features": [alert_feature("ok", "Tornado Warning")]})

        result = await make_adapter(handler, max_retries=1).collect(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        assert result.status.available is True
        assert result.status.record_count == 1

    @pytest.mark.asyncio
    async def test_invalid_window_is_rejected(self, bbox):
        adapter = make_adapter(lambda request: httpx.Response(200, json={"features": []}))

        with pytest.raises(ValueError):
            await adapter.collect(bbox, utc(2024, 6, 1), utc(2024, 5, 1))

    @pytest.mark.asyncio
    async def test_null_feature_list_is_empty(self, bbox):
        adapter = make_adapter(lambda request: httpx.Response(200, json={"features": None}))

        result = await adapter.collect(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        assert result.status.available is True
        assert result.records == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        [],
        {"features": [{"properties": {"id": "x1", "event": "Tornado Warning", "onset": 1715376600}}]},
        {"features": [{"properties": {"id": "x2", "event": "Tornado Warning"},
                       "geometry": {"type": "Polygon", "coordinates": [[[-96.8]]]}}]},
    ])
    async def test_malformed_payload_is_contained(self, bbox, body):
        adapter = make_adapter(lambda request: httpx.Response(200, json=body))

        result = await adapter.collect(bbox, utc(2024, 5, 1), utc(2024, 6, 1))

        assert result.status.available is False
        assert result.status.error_code == ErrorCode.SOURCE_UNAVAILABLE
        assert result.records == []

    @pytest.mark.asyncio
    async def test_malformed_alerts_degrade_on_demand_result(self, dallas_property, window):
        body = {"features": [{"properties": {"id": "x1", "event": "Tornado Warning", "onset": 1715376600}}]}
        alerts = make_adapter(lambda request: httpx.Response(200, json=body))
        reports = FakeAdapter(REPORTS, [make_record("hail-1", utc(2024, 5, 10, 22), magnitude=1.75, miles=1.2)])
        pipeline = WeatherIntelPipeline([alerts, reports])

        result = await pipeline.run(dallas_property, window, timeout=5.0, interactive=True)

        assert result.intel.degraded is True
        assert result.failed_sources == [ALERTS.value]
        assert result.intel.recommended_dol is not None
