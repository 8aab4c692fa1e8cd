"""
Desired-state (shadow) updates on nRF Cloud devices.

Used to switch the movement indicator LED on and off.
"""
import asyncio
import logging

import aiohttp

from ..const import DEVICE_UPDATE_INTERVAL
from ..requests import make_request, ApiResponseError

_LOGGER = logging.getLogger(__name__)


def build_led_state(led_config: dict) -> dict:
    """Desired-state document carrying an LED pattern."""
    return {
        "update_interval": DEVICE_UPDATE_INTERVAL,
        "led": dict(led_config),
    }


async def patch_device_state(
    base_url: str, device_id: str, desired: dict, headers: dict
) -> bool:
    """
    Send a desired-state patch to device_id. Returns True on success.

    Corresponding CURL command:
    curl -X 'PATCH' '<base_url>/devices/<ID>/state' \
         -d '{"desired": {...}}'
    """
    url = f"{base_url}/devices/{device_id}/state"
    try:
        await make_request("PATCH", url, headers, payload={"desired": desired})
    except ApiResponseError as e:
        _LOGGER.error("Error while updating state of device %s: %s", device_id, e)
        return False
    except (asyncio.TimeoutError, TimeoutError):
        _LOGGER.warning("Timeout while updating state of device %s", device_id)
        return False
    except (aiohttp.ClientError, ValueError) as e:
        _LOGGER.error("Failed to update state of device %s: %s", device_id, e)
        return False

    _LOGGER.debug("Desired state of device %s updated: %s", device_id, desired)
    return True
