"""
WardenRisk - IP geolocation

Geolocation is an external collaborator. ``StaticGeoResolver`` maps
networks to fixed coordinates for development and tests.
"""

from __future__ import annotations

import ipaddress
import math
from dataclasses import dataclass
from typing import Protocol


EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoLocation:
    latitude: float
    longitude: float
    country: str | None = None
    city: str | None = None


class GeoResolver(Protocol):
    async def resolve(self, ip_address: str) -> GeoLocation | None:
        """Location for an address, or None when unknown."""
        ...


def haversine_km(a: GeoLocation, b: GeoLocation) -> float:
    """Great-circle distance in kilometres."""
    lat1, lon1 = math.radians(a.latitude), math.radians(a.longitude)
    lat2, lon2 = math.radians(b.latitude), math.radians(b.longitude)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


class StaticGeoResolver:
    """
    Resolve addresses against a fixed network table.

    Example:
        >>> geo = StaticGeoResolver({
        ...     "10.0.0.0/8": GeoLocation(52.52, 13.40, "DE", "Berlin"),
        ...     "203.0.113.7": GeoLocation(40.71, -74.00, "US", "New York"),
        ... })
    """

    def __init__(self, table: dict[str, GeoLocation] | None = None):
        self._networks: list[tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, GeoLocation]] = []
        for network, location in (table or {}).items():
            self.add(network, location)

    def add(self, network: str, location: GeoLocation) -> None:
        self._networks.append((ipaddress.ip_network(network, strict=False), location))
        # Most specific network wins
        self._networks.sort(key=lambda item: item[0].prefixlen, reverse=True)

    async def resolve(self, ip_address: str) -> GeoLocation | None:
        try:
            address = ipaddress.ip_address(ip_address)
        except ValueError:
            return None
        for network, location in self._networks:
            if address.version == network.version and address in network:
                return location
        return None
