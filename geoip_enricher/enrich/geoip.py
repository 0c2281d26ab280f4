"""
GeoIP enrichment: looks up the source and destination addresses of an event in
the GeoIP city and ASN databases and attaches the location information.
"""

import ipaddress
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from ..schemas.event import Address, Event, Location, Locations, Protocol
from ..services.prometheus_metrics import prometheus_metrics
from .errors import LookupFailure
from .providers import ProviderPair
from .refresher import ReloadSignal

logger = logging.getLogger("enrich.geoip")

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def extract_address(addresses: Iterable[Address]) -> Optional[IPAddress]:
    """Address of the first IPv4 or IPv6 descriptor; later ones are ignored"""
    for addr in addresses:
        if addr.protocol == Protocol.ipv4:
            return _to_ip(ipaddress.IPv4Address, addr.address)
        if addr.protocol == Protocol.ipv6:
            return _to_ip(ipaddress.IPv6Address, addr.address)
    return None


def _to_ip(cls, raw: bytes) -> Optional[IPAddress]:
    try:
        return cls(raw)
    except ValueError:
        logger.debug(f"Malformed address bytes: {raw.hex()}")
        return None


def match_case(srcloc: Optional[Location], destloc: Optional[Location]) -> str:
    if srcloc is None:
        return "neither" if destloc is None else "dest"
    return "src" if destloc is None else "both"


class Enricher:
    """Event handler adding GeoIP locations to events"""

    def __init__(self,
                 providers: ProviderPair,
                 reload_signal: ReloadSignal,
                 output: Optional[Callable[[Event, Dict[str, str]], Any]] = None):
        self.providers = providers
        self.reload_signal = reload_signal
        self.output = output

    def lookup(self, ip: Optional[IPAddress],
               pair: Optional[Tuple[Any, Any]] = None) -> Optional[Location]:
        """
        Location for an address, or None when the databases know nothing useful.
        pair is a (city, asn) snapshot to query; a fresh one is taken if omitted.
        """
        if ip is None:
            return None

        city_db, asn_db = pair if pair is not None else self.providers.snapshot()

        city = None
        asn = None

        if city_db is not None:
            try:
                city = city_db.city(ip)
            except Exception as e:
                raise LookupFailure(f"city lookup failed for {ip}: {e}") from e

        if asn_db is not None:
            try:
                asn = asn_db.asn(ip)
            except Exception as e:
                raise LookupFailure(f"ASN lookup failed for {ip}: {e}") from e

        if city is None and asn is None:
            return None

        fields: Dict[str, Any] = {}

        if city is not None:
            fields["city"] = city.city.name or ""
            fields["iso"] = city.country.iso_code or ""
            fields["country"] = city.country.name or ""
            fields["latitude"] = city.location.latitude or 0.0
            fields["longitude"] = city.location.longitude or 0.0
            fields["postcode"] = city.postal.code or ""

        if asn is not None:
            number = asn.autonomous_system_number
            fields["asnum"] = "" if number is None else str(number)
            fields["asorg"] = asn.autonomous_system_organization or ""

        locn = Location(**fields)

        # Don't return an empty record
        if locn.is_empty():
            return None

        return locn

    def _lookup_side(self, ip: Optional[IPAddress], side: str,
                     pair: Tuple[Any, Any]) -> Optional[Location]:
        try:
            return self.lookup(ip, pair)
        except LookupFailure as e:
            prometheus_metrics.increment_lookup_errors(side)
            logger.debug(str(e), extra={
                "component": "enrich.geoip",
                "event": "lookup_failed",
                "side": side
            })
            return None

    def handle_event(self, event: Event, properties: Dict[str, str]) -> None:
        """Enrich one event and pass it on to the output"""

        # If the refresher has swapped the databases, re-open before going on
        if self.reload_signal.consume():
            logger.info("Update occurred - reopening GeoIP databases", extra={
                "component": "enrich.geoip",
                "event": "reload"
            })
            self.providers.reopen()

        src = extract_address(event.src)
        dest = extract_address(event.dest)

        # Both sides are served from the same database generation
        pair = self.providers.snapshot()

        srcloc = self._lookup_side(src, "src", pair)
        destloc = self._lookup_side(dest, "dest", pair)

        if srcloc is not None or destloc is not None:
            event.location = Locations(src=srcloc, dest=destloc)

        prometheus_metrics.increment_match_case(match_case(srcloc, destloc))

        if srcloc is not None and srcloc.iso:
            prometheus_metrics.increment_country(srcloc.iso)

        if destloc is not None and destloc.iso:
            prometheus_metrics.increment_country(destloc.iso)

        prometheus_metrics.increment_events()

        if self.output is not None:
            self.output(event, properties)
