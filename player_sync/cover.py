"""
Cover art helper: asks the player's HTTP API to inline a cover image.
"""
import asyncio
from typing import Optional

import requests

from logging_config import get_logger

logger = get_logger(__name__)

COVER_CONVERT_PATH = "/api/cover/convert"


def _fetch_cover_base64_sync(http_base: str, cover_url: str, timeout: float) -> Optional[str]:
    url = http_base.rstrip("/") + COVER_CONVERT_PATH
    try:
        response = requests.post(url, json={"cover_url": cover_url}, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        logger.warning(f"Fetch base64 cover failed: {e}")
        return None
    except ValueError as e:
        logger.warning(f"Cover conversion returned invalid JSON: {e}")
        return None

    image = data.get("base64Img") if isinstance(data, dict) else None
    if not image:
        logger.debug(f"Cover conversion returned no image for {cover_url}")
        return None
    return image


async def fetch_cover_base64(http_base: str, cover_url: str, timeout: float = 10.0) -> Optional[str]:
    """
    Convert a cover URL to a base64 data string via the player's HTTP API.

    Args:
        http_base (str): Player HTTP base URL, e.g. http://127.0.0.1:9863
        cover_url (str): Cover reference from SongInfo
        timeout (float): Request timeout in seconds

    Returns:
        Optional[str]: The base64 image, or None on any failure
    """
    if not cover_url:
        return None
    loop = asyncio.get_running_loop()
    # requests is blocking; keep it off the event loop
    return await loop.run_in_executor(None, _fetch_cover_base64_sync, http_base, cover_url, timeout)
