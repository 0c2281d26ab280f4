"""
Tests for the worker's HTTP surface: ingest, health and metrics
"""

import json
import time
from prometheus_client import CONTENT_TYPE_LATEST

EVENT = {
    "id": "3c0f8f0e",
    "action": "connected_up",
    "src": [{"protocol": "ipv4", "address": "10.0.0.5"}, {"protocol": "tcp", "address": 51812}],
    "dest": [{"protocol": "ipv4", "address": "192.0.2.80"}, {"protocol": "tcp", "address": 443}],
}


def _read_output(path, expected, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if path.exists():
            lines = path.read_text().splitlines()
            if len(lines) >= expected:
                return [json.loads(line) for line in lines]
        time.sleep(0.05)
    raise AssertionError(f"expected {expected} lines in {path}")


class TestHealth:
    def test_healthz(self, client):
        response = client.get("/v1/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_health_reports_providers(self, client):
        """Without database files both providers are missing and the refresher is waiting"""
        response = client.get("/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["providers"]["city"]["status"] == "missing"
        assert body["providers"]["asn"]["status"] == "missing"
        assert body["refresher"]["state"] == "waiting"
        assert body["refresher"]["interval"] == 86400


class TestIngest:
    def test_event_passes_through_to_output(self, client):
        response = client.post("/v1/events", json=EVENT)

        assert response.status_code == 200
        assert response.json() == {"accepted": 1}

        records = _read_output(client.output_dir / "geoip.ndjson", 1)
        assert records[0]["event"]["id"] == "3c0f8f0e"
        assert records[0]["event"]["dest"][0] == {"protocol": "ipv4", "address": "192.0.2.80"}
        assert "location" not in records[0]["event"]

    def test_batch_with_properties(self, client):
        second = dict(EVENT, id="3c0f8f0f")
        response = client.post("/v1/events/batch", json={"events": [EVENT, second], "properties": {"device": "probe-7"}})

        assert response.status_code == 200
        assert response.json() == {"accepted": 2}

        records = _read_output(client.output_dir / "geoip.ndjson", 2)
        assert [r["event"]["id"] for r in records] == ["3c0f8f0e", "3c0f8f0f"]
        assert all(r["properties"] == {"device": "probe-7"} for r in records)

    def test_invalid_event(self, client):
        bad = dict(EVENT, src=[{"protocol": "ipv4", "address": "300.1.2.3"}])

        response = client.post("/v1/events", json=bad)

        assert response.status_code == 422


class TestMetricsEndpoint:
    def test_prometheus_exposition(self, client):
        client.post("/v1/events", json=EVENT)
        _read_output(client.output_dir / "geoip.ndjson", 1)

        response = client.get("/v1/metrics/prometheus")

        assert response.status_code == 200
        assert response.headers["content-type"] == CONTENT_TYPE_LATEST
        text = response.text
        assert "geo_matches_total" in text
        assert 'geo_matches_total{case="neither"}' in text
        assert "geo_provider_enabled" in text
