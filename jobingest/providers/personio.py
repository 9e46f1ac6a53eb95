"""Personio XML job feed adapter.

The public feed lives at ``https://{slug}.jobs.personio.de/xml``. Tenants
differ in root element (``workzag-jobs``, ``positions``, ``jobs`` or a bare
``position``) and in how descriptions are shipped: newer feeds carry a
``jobDescriptions`` list of named HTML sections, older ones a flat
``description`` or ``jobDescription`` element.
"""

from __future__ import annotations

import logging
from html import escape
import xml.etree.ElementTree as ET

import httpx

from jobingest.core.html import MAX_TEXT_LENGTH, html_to_text
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

FEED_URL = "https://{slug}.jobs.personio.de/xml?language=en"
JOB_URL = "https://{slug}.jobs.personio.de/job/{job_id}"
POSITION_CONTAINERS = {"positions", "workzag-jobs", "jobs"}

logger = logging.getLogger(__name__)


def looks_like_xml(response: httpx.Response) -> bool:
    text = response.text
    return bool(text) and "<" in text


def find_positions(root: ET.Element) -> list[ET.Element]:
    if root.tag == "position":
        return [root]
    if root.tag in POSITION_CONTAINERS:
        return root.findall("position")
    return []


def description_html(position: ET.Element) -> str:
    sections = position.findall("jobDescriptions/jobDescription")
    if sections:
        parts: list[str] = []
        for section in sections:
            heading = _child_text(section, "name", "title")
            value = section.find("value")
            body = _inner_markup(value) if value is not None else ""
            if heading:
                parts.append(f"<h3>{escape(heading)}</h3>")
            parts.append(body)
        return "".join(parts)

    for tag in ("description", "jobDescription"):
        node = position.find(tag)
        if node is not None:
            return _inner_markup(node)
    return ""


def parse_feed(
    company: str,
    slug: str,
    xml: bytes | str,
    *,
    max_text_length: int = MAX_TEXT_LENGTH,
) -> list[IngestJob]:
    """Normalize a Personio feed; raises ``ET.ParseError`` for malformed XML."""
    root = ET.fromstring(xml)
    jobs: list[IngestJob] = []
    for position in find_positions(root):
        job_id = _child_text(position, "id")
        title = _child_text(position, "name", "title")
        url = JOB_URL.format(slug=slug, job_id=job_id) if job_id else _child_text(position, "url", "absolute_url")
        if not (title and url):
            continue
        jobs.append(
            IngestJob(
                company=company,
                source="personio",
                title=title,
                url=url,
                location=_child_text(position, "office", "location", "city"),
                seniority=_child_text(position, "seniority", "recruitingCategory"),
                posted_at=_child_text(position, "createdAt", "created-at", "date") or None,
                raw_text=html_to_text(description_html(position), max_length=max_text_length),
            )
        )
    return jobs


async def detect_personio(
    client: httpx.AsyncClient,
    company: str,
    website: str | None = None,
    *,
    timeout_seconds: float = PROBE_TIMEOUT_SECONDS,
) -> ProviderMatch | None:
    return await probe_candidates(
        client,
        slug_candidates(company, website),
        provider="personio",
        build_url=lambda slug: FEED_URL.format(slug=slug),
        accept=looks_like_xml,
        timeout_seconds=timeout_seconds,
    )


async def fetch_personio_jobs(
    client: httpx.AsyncClient,
    company: str,
    website: str | None,
    match: ProviderMatch,
    *,
    timeout_seconds: float = FETCH_TIMEOUT_SECONDS,
    max_text_length: int = MAX_TEXT_LENGTH,
) -> list[IngestJob]:
    try:
        response = await fetch_with_timeout(client, match.endpoint_url, timeout_seconds)
    except httpx.HTTPError as exc:
        logger.warning("personio request failed slug=%s error=%s", match.account, exc)
        return []
    if not response.is_success:
        logger.warning("personio fetch failed slug=%s status=%s", match.account, response.status_code)
        return []
    return parse_feed(company, match.account, response.content, max_text_length=max_text_length)


def _child_text(element: ET.Element, *names: str) -> str:
    for name in names:
        value = as_text(element.findtext(name))
        if value:
            return value
    return ""


def _inner_markup(element: ET.Element) -> str:
    # CDATA bodies arrive as text; inline XHTML bodies arrive as child elements
    children = "".join(ET.tostring(child, encoding="unicode") for child in element)
    return f"{element.text or ''}{children}".strip()


ADAPTER = ProviderAdapter(
    name="personio",
    account_key="slug",
    detect=detect_personio,
    fetch=fetch_personio_jobs,
)
