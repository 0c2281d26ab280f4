"""
Prometheus metrics for the GeoIP enrichment worker
"""

from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST
import os
from ..config import APP_VERSION

# Build info
BUILD_INFO = Gauge(
    'geo_build_info',
    'Build information',
    ['version', 'image', 'image_tag']
)

# Which of src/dest resolved to a location
MATCH_CASES = Counter(
    'geo_matches',
    'Match cases',
    ['case']
)

# Identified countries
COUNTRIES = Counter(
    'geo_country',
    'Identified countries',
    ['country']
)

EVENTS_TOTAL = Counter(
    'geo_events',
    'Total number of events handled by the enricher'
)

LOOKUP_ERRORS_TOTAL = Counter(
    'geo_lookup_errors',
    'Total number of failed GeoIP lookups',
    ['side']
)

# Database refresh
REFRESH_TOTAL = Counter(
    'geo_refresh',
    'GeoIP database refresh attempts',
    ['result']
)

LAST_REFRESH = Gauge(
    'geo_last_refresh_timestamp',
    'Timestamp of last successful GeoIP database refresh'
)

PROVIDER_ENABLED = Gauge(
    'geo_provider_enabled',
    'GeoIP provider status (1=enabled, 0=not enabled)',
    ['provider']
)

# Event bus
QUEUE_DEPTH = Gauge(
    'geo_queue_depth',
    'Current number of events waiting on a binding',
    ['binding']
)

QUEUE_DROPS_TOTAL = Counter(
    'geo_queue_drops',
    'Total number of events dropped because a binding queue was full',
    ['binding']
)

HANDLER_ERRORS_TOTAL = Counter(
    'geo_handler_errors',
    'Total number of events whose handler raised',
    ['binding']
)

class PrometheusMetrics:
    """Service for managing Prometheus metrics."""

    def __init__(self):
        self._setup_build_info()

    def _setup_build_info(self):
        """Set up build information gauge."""
        version = APP_VERSION
        image = os.getenv("IMAGE", "evs-geoip")
        image_tag = os.getenv("IMAGE_TAG", "latest")

        BUILD_INFO.labels(
            version=version,
            image=image,
            image_tag=image_tag
        ).set(1)

    def increment_match_case(self, case: str):
        """Increment the match case counter (both, src, dest, neither)."""
        MATCH_CASES.labels(case=case).inc()

    def increment_country(self, iso: str):
        """Increment the per-country counter."""
        COUNTRIES.labels(country=iso).inc()

    def increment_events(self, count: int = 1):
        EVENTS_TOTAL.inc(count)

    def increment_lookup_errors(self, side: str, count: int = 1):
        LOOKUP_ERRORS_TOTAL.labels(side=side).inc(count)

    def increment_refresh(self, result: str):
        """Increment refresh counter with result success or failure."""
        REFRESH_TOTAL.labels(result=result).inc()

    def set_last_refresh(self, timestamp: float):
        LAST_REFRESH.set(timestamp)

    def set_provider_enabled(self, provider: str, enabled: bool):
        """Set provider status gauge."""
        PROVIDER_ENABLED.labels(provider=provider).set(1 if enabled else 0)

    def set_queue_depth(self, binding: str, depth: int):
        QUEUE_DEPTH.labels(binding=binding).set(depth)

    def increment_queue_drops(self, binding: str, count: int = 1):
        QUEUE_DROPS_TOTAL.labels(binding=binding).inc(count)

    def increment_handler_errors(self, binding: str, count: int = 1):
        HANDLER_ERRORS_TOTAL.labels(binding=binding).inc(count)

    def get_metrics(self) -> bytes:
        """Get metrics in Prometheus format."""
        return generate_latest()

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST

# Global instance
prometheus_metrics = PrometheusMetrics()
