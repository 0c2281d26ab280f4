import ipaddress
from enum import Enum
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_serializer, field_validator


class Protocol(str, Enum):
    ipv4 = "ipv4"
    ipv6 = "ipv6"
    tcp = "tcp"
    udp = "udp"
    icmp = "icmp"
    http = "http"
    dns = "dns"
    smtp = "smtp"
    ftp = "ftp"
    ntp = "ntp"
    unknown = "unknown"


IP_PROTOCOLS = (Protocol.ipv4, Protocol.ipv6)


class Address(BaseModel):
    """One protocol layer of an endpoint: an IP address, a port, ..."""
    protocol: Protocol = Field(Protocol.unknown, description="Address family / protocol layer")
    address: bytes = Field(b"", description="Raw address bytes (4 or 16 for IP, 2 for ports)")

    @field_validator("protocol", mode="before")
    @classmethod
    def _known_protocol(cls, value):
        if isinstance(value, Protocol):
            return value
        try:
            return Protocol(str(value).lower())
        except ValueError:
            return Protocol.unknown

    @field_validator("address", mode="before")
    @classmethod
    def _raw_address(cls, value, info: ValidationInfo):
        protocol = info.data.get("protocol")
        if value is None or value == "":
            return b""
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, bool):
            raise ValueError("address must not be a boolean")
        if isinstance(value, str) and value.isdigit() and protocol not in IP_PROTOCOLS:
            value = int(value)
        if isinstance(value, int):
            if protocol == Protocol.ipv4:
                return ipaddress.IPv4Address(value).packed
            if protocol == Protocol.ipv6:
                return ipaddress.IPv6Address(value).packed
            if not 0 <= value <= 0xFFFF:
                raise ValueError(f"port out of range: {value}")
            return value.to_bytes(2, "big")
        if isinstance(value, str):
            return ipaddress.ip_address(value).packed
        return value

    @field_serializer("address")
    def _render_address(self, value: bytes) -> Union[str, int]:
        if self.protocol in IP_PROTOCOLS and len(value) in (4, 16):
            return str(ipaddress.ip_address(value))
        if len(value) == 2:
            return int.from_bytes(value, "big")
        return value.hex()


class Location(BaseModel):
    city: str = ""
    iso: str = ""
    country: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    postcode: str = ""
    asnum: str = ""
    asorg: str = ""

    def is_empty(self) -> bool:
        """True when no field carries information"""
        return not (self.city or self.iso or self.country or self.postcode or
                    self.latitude or self.longitude or self.asnum or self.asorg)


class Locations(BaseModel):
    src: Optional[Location] = None
    dest: Optional[Location] = None


class Event(BaseModel):
    """A network event as carried on the bus. Fields this stage does not use are preserved."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    action: Optional[str] = None
    time: Optional[str] = None
    src: List[Address] = Field(default_factory=list)
    dest: List[Address] = Field(default_factory=list)
    location: Optional[Locations] = None


class EventBatch(BaseModel):
    events: List[Event]
    properties: dict = Field(default_factory=dict)
