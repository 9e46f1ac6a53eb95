from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from jobingest.providers.base import (
    FETCH_TIMEOUT_SECONDS,
    PROBE_TIMEOUT_SECONDS,
    ProviderAdapter,
    ProviderMatch,
    as_text,
    fetch_with_timeout,
    probe_candidates,
)
from jobingest.providers.slugs import slug_candidates
from jobingest.schemas.ingest import IngestJob

POSTINGS_API_URL = "https://api.lever.co/v0/postings/{account}?mode=json"

logger = logging.getLogger(__name__)


class LeverCategories(BaseModel):
    location: str | None = None
    commitment: str | None = None


class LeverPosting(BaseModel):
    text: str | None = None
    hostedUrl: str | None = None
    categories: LeverCategories | None = None
    createdAt: float | None = None
    descriptionPlain: str | None = None


def epoch_millis_to_iso(value: float | None) -> str:
    if not value:
        return ""
    try:
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return ""


def parse_postings(company: str, payload: Any) -> list[IngestJob]:
    if not isinstance(payload, list):
        return []
    jobs: list[IngestJob] = []
    for item in payload:
        try:
            posting = LeverPosting.model_validate(item)
        except ValidationError:
            continue
        title = as_text(posting.text)
        url = as_text(posting.hostedUrl)
        if not (title and url):
            continue
        categories = posting.categories or LeverCategories()
        jobs.append(
            IngestJob(
                company=company,
                source="lever",
                title=title,
                url=url,
                location=as_text(categories.location),
                seniority=as_text(categories.commitment),
                posted_at=epoch_millis_to_iso(posting.createdAt),
                raw_text=posting.descriptionPlain or "",
            )
        )
    return jobs


async def detect_lever(
    client: httpx.AsyncClient,
    company: str,
    website: str | None = None,
    *,
    timeout_seconds: float = PROBE_TIMEOUT_SECONDS,
) -> ProviderMatch | None:
    return await probe_candidates(
        client,
        slug_candidates(company, website),
        provider="lever",
        build_url=lambda account: POSTINGS_API_URL.format(account=account),
        accept=lambda response: isinstance(response.json(), list),
        timeout_seconds=timeout_seconds,
    )


async def fetch_lever_jobs(
    client: httpx.AsyncClient,
    company: str,
    website: str | None,
    match: ProviderMatch,
    *,
    timeout_seconds: float = FETCH_TIMEOUT_SECONDS,
) -> list[IngestJob]:
    try:
        response = await fetch_with_timeout(client, match.endpoint_url, timeout_seconds)
    except httpx.HTTPError as exc:
        logger.warning("lever request failed account=%s error=%s", match.account, exc)
        return []
    if not response.is_success:
        logger.warning("lever fetch failed account=%s status=%s", match.account, response.status_code)
        return []
    try:
        payload = response.json()
    except ValueError:
        logger.warning("lever postings for account=%s are not JSON", match.account)
        return []
    return parse_postings(company, payload)


ADAPTER = ProviderAdapter(
    name="lever",
    account_key="account",
    detect=detect_lever,
    fetch=fetch_lever_jobs,
)
