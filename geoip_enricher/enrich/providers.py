"""
GeoIP lookup providers backed by MaxMind GeoLite2 databases, and the shared
city/ASN provider pair the enricher reads and the refresher replaces.
"""

import logging
import threading
import time
from typing import Any, Dict, Optional, Protocol, Tuple

import geoip2.database
import geoip2.errors
from maxminddb import InvalidDatabaseError

from ..config import GEOIP_DB, GEOIP_ASN_DB
from ..services.prometheus_metrics import prometheus_metrics
from .errors import ProviderOpenFailure

logger = logging.getLogger("enrich.providers")


class LookupProvider(Protocol):
    """Answers geo and AS queries for an IP address; None means not in the database"""

    def city(self, ip: Any) -> Optional[Any]:
        ...

    def asn(self, ip: Any) -> Optional[Any]:
        ...


class GeoIPProvider:
    """LookupProvider over a geoip2 database reader"""

    def __init__(self, name: str, path: str, reader: geoip2.database.Reader):
        self.name = name
        self.path = path
        self._reader = reader

    @classmethod
    def open(cls, name: str, path: str) -> "GeoIPProvider":
        try:
            reader = geoip2.database.Reader(path)
        except (OSError, ValueError, InvalidDatabaseError) as e:
            raise ProviderOpenFailure(name, path, e) from e
        return cls(name, path, reader)

    def city(self, ip: Any) -> Optional[Any]:
        try:
            return self._reader.city(ip)
        except geoip2.errors.AddressNotFoundError:
            return None

    def asn(self, ip: Any) -> Optional[Any]:
        try:
            return self._reader.asn(ip)
        except geoip2.errors.AddressNotFoundError:
            return None

    def __repr__(self) -> str:
        return f"GeoIPProvider({self.name!r}, {self.path!r})"


class ProviderPair:
    """
    The active city and ASN providers.

    Both handles are replaced together under one lock, and readers take both
    under the same lock, so nobody sees a new city provider paired with an old
    ASN provider. Replaced readers are not closed here: an in-flight lookup may
    still hold them, and they are released with their last reference.
    """

    def __init__(self, city_path: str = GEOIP_DB, asn_path: str = GEOIP_ASN_DB, opener=GeoIPProvider.open):
        self.city_path = city_path
        self.asn_path = asn_path
        self._opener = opener
        self._lock = threading.Lock()
        self._city: Optional[LookupProvider] = None
        self._asn: Optional[LookupProvider] = None
        self.last_reopen = 0.0
        self.reopen_count = 0

    def snapshot(self) -> Tuple[Optional[LookupProvider], Optional[LookupProvider]]:
        """Current (city, asn) handles, read atomically"""
        with self._lock:
            return self._city, self._asn

    @property
    def city(self) -> Optional[LookupProvider]:
        return self.snapshot()[0]

    @property
    def asn(self) -> Optional[LookupProvider]:
        return self.snapshot()[1]

    def replace(self, city: Optional[LookupProvider], asn: Optional[LookupProvider]):
        """Swap in a new pair of handles"""
        with self._lock:
            self._city = city
            self._asn = asn
            self.last_reopen = time.time()
            self.reopen_count += 1

    def _open(self, name: str, path: str) -> Optional[LookupProvider]:
        try:
            return self._opener(name, path)
        except ProviderOpenFailure as e:
            logger.warning(str(e), extra={
                "component": "enrich.providers",
                "event": "open_failed",
                "provider": name,
                "db_path": path
            })
            return None

    def reopen(self) -> Tuple[bool, bool]:
        """Open both databases by filename and swap them in. Returns (city enabled, asn enabled)."""
        logger.info("Opening GeoIP databases", extra={"component": "enrich.providers"})

        city = self._open("city", self.city_path)
        asn = self._open("asn", self.asn_path)
        self.replace(city, asn)

        if city is None:
            logger.info("No active GeoIP city DB", extra={"component": "enrich.providers"})
        else:
            logger.info("GeoIP City is enabled", extra={"component": "enrich.providers"})

        if asn is None:
            logger.info("No active GeoIP ASN DB", extra={"component": "enrich.providers"})
        else:
            logger.info("GeoIP ASN is enabled", extra={"component": "enrich.providers"})

        prometheus_metrics.set_provider_enabled("city", city is not None)
        prometheus_metrics.set_provider_enabled("asn", asn is not None)

        return city is not None, asn is not None

    def get_status(self) -> Dict[str, Any]:
        city, asn = self.snapshot()
        return {
            "city": {"status": "enabled" if city is not None else "missing", "db_path": self.city_path},
            "asn": {"status": "enabled" if asn is not None else "missing", "db_path": self.asn_path},
            "last_reopen": self.last_reopen,
            "reopen_count": self.reopen_count
        }
