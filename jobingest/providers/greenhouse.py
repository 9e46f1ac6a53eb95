from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from jobingest.core.html import ensure_markup, strip_iframes
from jobingest.providers.base import (
    FETCH_TIMEOUT_SECONDS,
    PROBE_TIMEOUT_SECONDS,
    ProviderAdapter,
    ProviderMatch,
    fetch_with_timeout,
    map_with_limit,
    probe_candidates,
)
from jobingest.providers.slugs import slug_candidates
from jobingest.schemas.ingest import IngestJob

BOARD_API_URL = "https://boards-api.greenhouse.io/v1/boards/{board}/jobs"
DETAIL_CONCURRENCY = 6

logger = logging.getLogger(__name__)


class GreenhouseLocation(BaseModel):
    name: str | None = None


class GreenhouseJobStub(BaseModel):
    id: int
    title: str | None = None
    absolute_url: str | None = None
    location: GreenhouseLocation | None = None
    updated_at: str | None = None
    created_at: str | None = None


class GreenhouseJobDetail(BaseModel):
    content: str | None = None


def is_job_list(payload: Any) -> bool:
    return isinstance(payload, dict) and isinstance(payload.get("jobs"), list)


def parse_job_stubs(payload: Any) -> list[GreenhouseJobStub]:
    """Validated stubs carrying both a title and a URL; anything else is skipped."""
    if not is_job_list(payload):
        return []
    stubs: list[GreenhouseJobStub] = []
    for item in payload["jobs"]:
        try:
            stub = GreenhouseJobStub.model_validate(item)
        except ValidationError:
            continue
        if (stub.title or "").strip() and (stub.absolute_url or "").strip():
            stubs.append(stub)
    return stubs


async def detect_greenhouse(
    client: httpx.AsyncClient,
    company: str,
    website: str | None = None,
    *,
    timeout_seconds: float = PROBE_TIMEOUT_SECONDS,
) -> ProviderMatch | None:
    return await probe_candidates(
        client,
        slug_candidates(company, website),
        provider="greenhouse",
        build_url=lambda board: BOARD_API_URL.format(board=board),
        accept=lambda response: is_job_list(response.json()),
        timeout_seconds=timeout_seconds,
    )


async def fetch_greenhouse_jobs(
    client: httpx.AsyncClient,
    company: str,
    website: str | None,
    match: ProviderMatch,
    *,
    timeout_seconds: float = FETCH_TIMEOUT_SECONDS,
    concurrency: int = DETAIL_CONCURRENCY,
) -> list[IngestJob]:
    try:
        response = await fetch_with_timeout(client, match.endpoint_url, timeout_seconds)
    except httpx.HTTPError as exc:
        logger.warning("greenhouse list request failed board=%s error=%s", match.account, exc)
        return []
    if not response.is_success:
        logger.warning("greenhouse list fetch failed board=%s status=%s", match.account, response.status_code)
        return []
    try:
        payload = response.json()
    except ValueError:
        logger.warning("greenhouse list for board=%s is not JSON", match.account)
        return []

    stubs = parse_job_stubs(payload)

    async def build_job(stub: GreenhouseJobStub, _: int) -> IngestJob:
        content = await _fetch_detail_content(client, match, stub.id, timeout_seconds)
        return IngestJob(
            company=company,
            source="greenhouse",
            title=(stub.title or "").strip(),
            url=(stub.absolute_url or "").strip(),
            location=(stub.location.name or "") if stub.location else "",
            seniority="",
            posted_at=stub.updated_at or stub.created_at or None,
            raw_text=content,
        )

    return await map_with_limit(stubs, concurrency, build_job)


async def _fetch_detail_content(
    client: httpx.AsyncClient,
    match: ProviderMatch,
    job_id: int,
    timeout_seconds: float,
) -> str:
    detail_url = f"{BOARD_API_URL.format(board=match.account)}/{job_id}"
    try:
        response = await fetch_with_timeout(client, detail_url, timeout_seconds)
        if not response.is_success:
            return ""
        detail = GreenhouseJobDetail.model_validate(response.json())
    except (httpx.HTTPError, ValueError) as exc:
        # ValidationError subclasses ValueError
        logger.debug("greenhouse detail failed board=%s job=%s error=%s", match.account, job_id, exc)
        return ""
    if not isinstance(detail.content, str):
        return ""
    return strip_iframes(ensure_markup(detail.content))


ADAPTER = ProviderAdapter(
    name="greenhouse",
    account_key="board",
    detect=detect_greenhouse,
    fetch=fetch_greenhouse_jobs,
)
