"""
View Enrichment

Best-effort tags attached to a recorded view:
- Location from an ip-api compatible JSON endpoint
- Device type, browser and OS parsed from the User-Agent

Nothing here may fail a view: every lookup problem degrades to "Unknown".
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.setting import settings

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


@dataclass(frozen=True)
class GeoLocation:
    country: str = UNKNOWN
    city: str = UNKNOWN
    region: str = UNKNOWN


@dataclass(frozen=True)
class DeviceInfo:
    device_type: str = UNKNOWN
    browser: str = UNKNOWN
    operating_system: str = UNKNOWN


@dataclass(frozen=True)
class ViewTags:
    location: GeoLocation
    device: DeviceInfo


def is_public_ip(value: str) -> bool:
    """False for private, loopback, reserved addresses and non-IP identifiers."""
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    return address.is_global


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    if not user_agent:
        return DeviceInfo()

    if "Mobile" in user_agent or "Android" in user_agent or "iPhone" in user_agent:
        device_type = "Mobile"
    elif "Tablet" in user_agent or "iPad" in user_agent:
        device_type = "Tablet"
    else:
        device_type = "Desktop"

    if "Edg" in user_agent:
        browser = "Edge"
    elif "Chrome" in user_agent:
        browser = "Chrome"
    elif "Firefox" in user_agent:
        browser = "Firefox"
    elif "Safari" in user_agent:
        browser = "Safari"
    else:
        browser = "Other"

    # Android and iOS user agents also mention Linux / Mac OS X
    if "Android" in user_agent:
        operating_system = "Android"
    elif "iPhone" in user_agent or "iPad" in user_agent:
        operating_system = "iOS"
    elif "Windows" in user_agent:
        operating_system = "Windows"
    elif "Mac OS" in user_agent:
        operating_system = "macOS"
    elif "Linux" in user_agent:
        operating_system = "Linux"
    else:
        operating_system = "Other"

    return DeviceInfo(device_type=device_type, browser=browser, operating_system=operating_system)


class ViewEnricher:
    """
    Resolves location and device tags for a view.
    """

    def __init__(
        self,
        geo_enabled: Optional[bool] = None,
        geo_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            geo_enabled: Whether to call the geo service (defaults to settings)
            geo_url: Base URL, the IP address is appended
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.geo_enabled = settings.GEO_LOOKUP_ENABLED if geo_enabled is None else geo_enabled
        self.geo_url = geo_url or settings.GEO_LOOKUP_URL
        self.timeout = timeout or settings.GEO_LOOKUP_TIMEOUT_SECONDS
        self.transport = transport

    async def lookup_location(self, ip_address: str) -> GeoLocation:
        if not self.geo_enabled or not is_public_ip(ip_address):
            return GeoLocation()

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.geo_url}{ip_address}")
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to get location for IP {ip_address}: {e}")
            return GeoLocation()

        if not isinstance(payload, dict):
            logger.error(f"Unexpected geo payload for IP {ip_address}: {type(payload).__name__}")
            return GeoLocation()

        if payload.get("status") != "success":
            return GeoLocation()

        return GeoLocation(
            country=payload.get("country") or UNKNOWN,
            city=payload.get("city") or UNKNOWN,
            region=payload.get("regionName") or UNKNOWN,
        )

    async def enrich(self, client_id: str, user_agent: Optional[str]) -> ViewTags:
        try:
            location = await self.lookup_location(client_id)
        except Exception as e:
            logger.error(f"Geo lookup failed for {client_id}: {e}", exc_info=True)
            location = GeoLocation()

        return ViewTags(location=location, device=parse_user_agent(user_agent))
