from __future__ import annotations

from typing import Any

import httpx

from providers.types import MalformedResponse, ProviderUnavailable

USER_AGENT = "location-hazard-report/1.0"


async def get_json(
    client: httpx.AsyncClient, source_id: str, url: str, params: dict[str, Any]
) -> Any:
    """
    GET `url` and decode JSON, mapping transport failures onto the provider errors.
    """
    try:
        r = await client.get(url, params=params, headers={"User-Agent": USER_AGENT})
        r.raise_for_status()
    except httpx.TimeoutException as e:
        raise ProviderUnavailable(source_id, f"timeout: {e}") from e
    except httpx.HTTPStatusError as e:
        raise ProviderUnavailable(source_id, f"HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise ProviderUnavailable(source_id, f"{type(e).__name__}: {e}") from e

    try:
        return r.json()
    except ValueError as e:
        raise MalformedResponse(source_id, "response is not JSON") from e
