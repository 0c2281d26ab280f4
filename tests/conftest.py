# tests/conftest.py
import os
import pytest
import requests

from fakes import StubOpener
from geoip_enricher.enrich.geoip import Enricher
from geoip_enricher.enrich.providers import ProviderPair
from geoip_enricher.enrich.refresher import ReloadSignal

BASE_URL = os.getenv("BASE_URL") or os.getenv("APP_BASE_URL")

class BaseUrlSession(requests.Session):
    def __init__(self, base_url: str):
        super().__init__()
        self._base = base_url.rstrip("/")

    def request(self, method, url, *args, **kwargs):
        # Allow relative paths like "/v1/health"
        if not url.lower().startswith("http"):
            url = f"{self._base}/{url.lstrip('/')}"
        return super().request(method, url, *args, **kwargs)

@pytest.fixture
def opener():
    return StubOpener()

@pytest.fixture
def providers(opener):
    return ProviderPair("city.mmdb", "asn.mmdb", opener=opener)

@pytest.fixture
def reload_signal():
    return ReloadSignal()

@pytest.fixture
def published():
    return []

@pytest.fixture
def enricher(providers, reload_signal, published):
    return Enricher(providers, reload_signal, output=lambda ev, props: published.append((ev, props)))

@pytest.fixture
def client(tmp_path, monkeypatch):
    """
    In-process TestClient with the worker's lifespan running, or a session
    against a running container when BASE_URL is set (e2e mode).
    """
    if BASE_URL:
        yield BaseUrlSession(BASE_URL)
        return

    from fastapi.testclient import TestClient
    from geoip_enricher import config
    from geoip_enricher.main import app

    monkeypatch.setattr(config, "GEOIP_DB", str(tmp_path / "GeoLite2-City.mmdb"))
    monkeypatch.setattr(config, "GEOIP_ASN_DB", str(tmp_path / "GeoLite2-ASN.mmdb"))
    monkeypatch.setattr(config, "GEOIPUPDATE_DIR", str(tmp_path))
    monkeypatch.setattr(config, "OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setattr(config, "INPUT", "cyberprobe")
    monkeypatch.setattr(config, "OUTPUTS", ["geoip"])

    with TestClient(app) as test_client:
        test_client.output_dir = tmp_path / "out"
        yield test_client
