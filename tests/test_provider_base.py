from __future__ import annotations

import asyncio

import httpx

from jobingest.providers.base import ProviderMatch, as_text, map_with_limit, probe_candidates


def test_map_with_limit_bounds_in_flight_calls_and_preserves_order() -> None:
    in_flight = 0
    peak = 0

    async def double(item: int, index: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        # later items finish first
        await asyncio.sleep(0.001 * (20 - index))
        in_flight -= 1
        return item * 2

    results = asyncio.run(map_with_limit(list(range(20)), 6, double))

    assert results == [item * 2 for item in range(20)]
    assert peak == 6


def test_map_with_limit_handles_empty_input_and_small_batches() -> None:
    async def identity(item: str, _: int) -> str:
        return item

    assert asyncio.run(map_with_limit([], 6, identity)) == []
    assert asyncio.run(map_with_limit(["a", "b"], 6, identity)) == ["a", "b"]


def test_probe_candidates_skips_errors_and_misses_until_first_accepted() -> None:
    requested: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        if request.url.path == "/boom":
            raise httpx.ConnectError("boom", request=request)
        if request.url.path == "/missing":
            return httpx.Response(404, request=request)
        if request.url.path == "/garbage":
            return httpx.Response(200, text="not json", request=request)
        return httpx.Response(200, json={"ok": True}, request=request)

    async def run() -> ProviderMatch | None:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await probe_candidates(
                client,
                ["boom", "missing", "garbage", "live", "never"],
                provider="lever",
                build_url=lambda candidate: f"https://probe.test/{candidate}",
                accept=lambda response: response.json().get("ok") is True,
            )

    match = asyncio.run(run())

    assert match == ProviderMatch(provider="lever", account="live", endpoint_url="https://probe.test/live")
    assert requested == ["/boom", "/missing", "/garbage", "/live"]


def test_probe_candidates_passes_timeout_to_each_request() -> None:
    timeouts: list[float] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        timeouts.append(request.extensions["timeout"]["read"])
        return httpx.Response(404, request=request)

    async def run() -> ProviderMatch | None:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await probe_candidates(
                client,
                ["a", "b"],
                provider="greenhouse",
                build_url=lambda candidate: f"https://probe.test/{candidate}",
                accept=lambda _: True,
                timeout_seconds=2.5,
            )

    assert asyncio.run(run()) is None
    assert timeouts == [2.5, 2.5]


def test_as_text_strips_and_stringifies() -> None:
    assert as_text(None) == ""
    assert as_text("  Berlin ") == "Berlin"
    assert as_text(42) == "42"
