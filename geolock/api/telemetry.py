"""
Latest-position lookup from the nRF Cloud location history API.

Responsible for:
- Fetching the most recent location fix of a device
- Parsing the first history item into a Position
"""
import asyncio
import logging

import aiohttp

from ..models import Position
from ..requests import make_request, ApiResponseError

_LOGGER = logging.getLogger(__name__)


def parse_latest_position(raw_json: dict | None) -> Position | None:
    """
    Return the first history item of a location history response as a Position.

    nRF Cloud reports coordinates as strings; items without both lat and lon
    are treated as no fix.
    """
    if not raw_json:
        return None
    items = raw_json.get("items") or []
    if not items:
        return None
    item = items[0]
    lat, lon = item.get("lat"), item.get("lon")
    if lat in (None, "") or lon in (None, ""):
        return None
    try:
        uncertainty = item.get("uncertainty")
        return Position(
            lat=float(lat),
            lon=float(lon),
            uncertainty=float(uncertainty) if uncertainty not in (None, "") else None,
            service_type=item.get("serviceType"),
        )
    except (TypeError, ValueError):
        _LOGGER.warning("Unparsable location item: %s", item)
        return None


async def fetch_latest_location(
    base_url: str, device_id: str, headers: dict
) -> tuple[Position | None, dict | None]:
    """
    Fetch the latest known location of device_id.

    Returns a tuple of (position, raw_json).
    On error returns (None, None); an empty history returns (None, raw_json).

    Corresponding CURL command:
    curl -X 'GET' '<base_url>/location/history?deviceId=<ID>&latest=true' \
         -H 'Authorization: Bearer <API_KEY>'
    """
    url = f"{base_url}/location/history"
    params = {"deviceId": device_id, "latest": "true"}
    try:
        raw_json = await make_request("GET", url, headers, params=params)
    except ApiResponseError as e:
        _LOGGER.error("Error while getting location history for %s: %s", device_id, e)
        return None, None
    except (asyncio.TimeoutError, TimeoutError):
        _LOGGER.warning("Timeout while getting location history for %s", device_id)
        return None, None
    except (aiohttp.ClientError, ValueError) as e:
        _LOGGER.error("Failed to get location history for %s: %s", device_id, e)
        return None, None

    position = parse_latest_position(raw_json)
    if position is None:
        _LOGGER.info("No location fix available for device %s", device_id)
    return position, raw_json
