from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar, cast

import httpx

from jobingest.schemas.ingest import IngestJob, ProviderKind

PROBE_TIMEOUT_SECONDS = 5.0
FETCH_TIMEOUT_SECONDS = 8.0

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProviderMatch:
    provider: ProviderKind
    account: str
    endpoint_url: str


DetectFn = Callable[..., Awaitable[ProviderMatch | None]]
FetchFn = Callable[..., Awaitable[list[IngestJob]]]


@dataclass(frozen=True, slots=True)
class ProviderAdapter:
    """Detect/fetch pair for one provider.

    ``account_key`` names the field carrying the matched account in the
    orchestrator's result log (``slug``, ``board`` or ``account``).
    """

    name: ProviderKind
    account_key: str
    detect: DetectFn
    fetch: FetchFn


async def fetch_with_timeout(client: httpx.AsyncClient, url: str, timeout_seconds: float) -> httpx.Response:
    return await client.get(url, timeout=timeout_seconds)


async def probe_candidates(
    client: httpx.AsyncClient,
    candidates: Iterable[str],
    *,
    provider: ProviderKind,
    build_url: Callable[[str], str],
    accept: Callable[[httpx.Response], bool],
    timeout_seconds: float = PROBE_TIMEOUT_SECONDS,
) -> ProviderMatch | None:
    """Probe candidates in order and return the first one whose feed looks live."""
    for candidate in candidates:
        url = build_url(candidate)
        try:
            response = await fetch_with_timeout(client, url, timeout_seconds)
            if not response.is_success:
                logger.debug("%s probe miss candidate=%s status=%s", provider, candidate, response.status_code)
                continue
            if accept(response):
                return ProviderMatch(provider=provider, account=candidate, endpoint_url=url)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.debug("%s probe failed candidate=%s error=%s", provider, candidate, exc)
    return None


async def map_with_limit(
    items: Sequence[T],
    limit: int,
    fn: Callable[[T, int], Awaitable[R]],
) -> list[R]:
    """Run ``fn`` over ``items`` with at most ``limit`` calls in flight.

    Workers claim the next unclaimed index from a shared iterator, so results
    land at their input position regardless of completion order.
    """
    results: list[Any] = [None] * len(items)
    claims = iter(range(len(items)))

    async def worker() -> None:
        for index in claims:
            results[index] = await fn(items[index], index)

    worker_count = min(max(1, limit), max(1, len(items)))
    await asyncio.gather(*(worker() for _ in range(worker_count)))
    return cast(list[R], results)


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()
