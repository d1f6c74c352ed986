"""Shipxy client — vessels with an ETA at a port within a time range.

Endpoint: ``GET {SHIPXY_BASE_URL}/GetETAShips`` with ``key``, ``port_code``,
``start_time`` and ``end_time`` (epoch seconds).  The API is rate limited
and key authenticated; a failed call is not retried here because the next
scheduled tick is the retry.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from dockday.config import settings
from dockday.modules.errors import FetchFailure
from dockday.modules.stores import parse_vessels
from dockday.schemas.vessel import VesselRecord

logger = logging.getLogger(__name__)

_ETA_SHIPS_PATH = "/GetETAShips"


def fetch_vessels(
    port_code: str,
    start_s: int,
    end_s: int,
    api_key: str | None = None,
    client: httpx.Client | None = None,
) -> list[VesselRecord]:
    """Fetch vessels whose ETA at ``port_code`` falls in ``[start_s, end_s]``.

    Raises:
        FetchFailure: transport error, non-2xx status, non-JSON body or an
            error payload without a vessel list.
    """
    key = api_key or settings.SHIPXY_API_KEY
    if not key:
        raise FetchFailure("SHIPXY_API_KEY not configured")

    params: dict[str, Any] = {
        "key": key,
        "port_code": port_code,
        "start_time": start_s,
        "end_time": end_s,
    }
    url = settings.SHIPXY_BASE_URL.rstrip("/") + _ETA_SHIPS_PATH

    owns_client = client is None
    http = client or httpx.Client(timeout=settings.SHIPXY_TIMEOUT, follow_redirects=True)
    try:
        resp = http.get(url, params=params)
        resp.raise_for_status()
        body = resp.json()
    except httpx.HTTPStatusError as exc:
        logger.error("Shipxy request failed: HTTP %d", exc.response.status_code)
        raise FetchFailure(f"Shipxy returned HTTP {exc.response.status_code}") from exc
    except httpx.TimeoutException as exc:
        logger.error("Shipxy request timed out after %ss", settings.SHIPXY_TIMEOUT)
        raise FetchFailure("Shipxy request timed out") from exc
    except httpx.HTTPError as exc:
        raise FetchFailure(f"Shipxy request failed: {type(exc).__name__}: {exc}") from exc
    except ValueError as exc:
        raise FetchFailure("Shipxy returned a non-JSON body") from exc
    finally:
        if owns_client:
            http.close()

    raw_vessels = _extract_vessels(body)
    vessels = parse_vessels(raw_vessels)
    if len(vessels) < len(raw_vessels):
        logger.info("Shipxy: skipped %d malformed vessel records", len(raw_vessels) - len(vessels))
    logger.info("Shipxy: fetched %d vessels for %s", len(vessels), port_code)
    return vessels


def _extract_vessels(body: Any) -> list:
    """Return the ``data`` list of a GetETAShips response."""
    if not isinstance(body, dict):
        raise FetchFailure(f"Shipxy payload is {type(body).__name__}, expected object")
    data = body.get("data")
    if isinstance(data, list):
        return data
    if data is None:
        status = body.get("status")
        if status not in (None, 0, "0"):
            raise FetchFailure(f"Shipxy API error {status}: {body.get('msg') or 'unknown error'}")
        return []
    raise FetchFailure(f"Shipxy 'data' is {type(data).__name__}, expected list")
