"""Async HTTP clients for the Trafiklab realtime feed and the static extract host."""

import asyncio
import logging

import httpx

from sl_tracker.config import settings
from sl_tracker.core.errors import UpstreamError

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
RETRY_BACKOFF = (2, 4, 8)  # seconds between retries


class RetryingClient:
    """Thin wrapper around httpx.AsyncClient with retry and exponential backoff."""

    def __init__(
        self,
        base_url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_backoff: tuple[float, ...] = RETRY_BACKOFF,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=30.0,
            params=params,
            headers=headers,
            transport=transport,
        )
        self._retry_backoff = retry_backoff

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_with_retry(self, path: str, label: str) -> httpx.Response:
        """GET request with retry; raises UpstreamError once retries are exhausted."""
        retries = min(MAX_RETRIES, len(self._retry_backoff))
        for attempt in range(retries + 1):
            try:
                resp = await self._client.get(path)
                resp.raise_for_status()
                return resp
            except (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.ConnectError) as e:
                if attempt < retries:
                    wait = self._retry_backoff[attempt]
                    logger.warning(
                        "%s attempt %d/%d failed (%s), retrying in %ss",
                        label, attempt + 1, retries + 1, type(e).__name__, wait,
                    )
                    await asyncio.sleep(wait)
                else:
                    logger.error("%s failed after %d attempts: %s", label, retries + 1, e)
                    raise UpstreamError(label, f"{type(e).__name__}: {e}") from e
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status >= 500 and attempt < retries:
                    wait = self._retry_backoff[attempt]
                    logger.warning(
                        "%s attempt %d/%d got HTTP %d, retrying in %ss",
                        label, attempt + 1, retries + 1, status, wait,
                    )
                    await asyncio.sleep(wait)
                else:
                    logger.error("Failed to fetch %s: HTTP %d", label, status)
                    raise UpstreamError(label, f"HTTP {status}", status_code=status) from e
            except httpx.HTTPError as e:
                logger.error("Failed to fetch %s: %s", label, e)
                raise UpstreamError(label, str(e)) from e
        raise UpstreamError(label, "no attempts made")


class FeedClient(RetryingClient):
    """Fetches raw GTFS-RT protobuf payloads for SL from Trafiklab."""

    def __init__(self, api_key: str | None = None, **kwargs) -> None:
        kwargs.setdefault("headers", {"Accept": "application/x-protobuf"})
        super().__init__(
            kwargs.pop("base_url", settings.feed_base_url),
            params={"key": api_key if api_key is not None else settings.rt_api_key or ""},
            **kwargs,
        )

    async def fetch_vehicle_positions(self) -> bytes:
        resp = await self._get_with_retry(settings.vehicle_positions_path, "vehicle positions")
        logger.debug("Fetched %d bytes of vehicle positions", len(resp.content))
        return resp.content

    async def fetch_trip_updates(self) -> bytes:
        resp = await self._get_with_retry(settings.trip_updates_path, "trip updates")
        logger.debug("Fetched %d bytes of trip updates", len(resp.content))
        return resp.content


class ExtractClient(RetryingClient):
    """Fetches the preprocessed static schedule extract (JSON files)."""

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("headers", {"Accept": "application/json"})
        super().__init__(kwargs.pop("base_url", settings.static_base_url), **kwargs)

    async def _get_json(self, path: str, label: str):
        resp = await self._get_with_retry(path, label)
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(label, f"invalid JSON: {e}") from e

    async def fetch_manifest(self) -> list:
        return await self._get_json("manifest.json", "manifest")

    async def fetch_stops(self) -> list:
        return await self._get_json("stops.json", "stops")

    async def fetch_trip_map(self) -> dict:
        return await self._get_json("trip-to-route.json", "trip map")

    async def fetch_route_directions(self) -> dict:
        return await self._get_json("route-directions.json", "route directions")

    async def fetch_line(self, route_id: str) -> dict | None:
        """Fetch one line file; None when the extract has no such route."""
        try:
            return await self._get_json(f"lines/{route_id}.json", f"line {route_id}")
        except UpstreamError as e:
            if e.status_code == 404:
                return None
            raise
