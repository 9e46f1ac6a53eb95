"""Ingestion orchestrator.

For every company website the Personio, Greenhouse and Lever adapters are
tried in that fixed order. Each (company, provider) attempt is isolated: a
failing adapter adds an error entry to the result log and the run moves on.
Storage errors are not caught here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from functools import partial
from typing import Any

import httpx
from opentelemetry import trace

from jobingest.core.config import Settings, get_settings
from jobingest.core.domains import company_name_from_url, normalize_domain
from jobingest.providers import greenhouse, lever, personio
from jobingest.providers.base import ProviderAdapter, ProviderMatch
from jobingest.schemas.ingest import CompanyInput, IngestJob
from jobingest.services.store import JobStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

NO_PROVIDER_NOTE = "no provider detected"


def build_adapters(settings: Settings) -> tuple[ProviderAdapter, ...]:
    """Adapters in probing order, with fetch options bound from settings."""
    return (
        replace(personio.ADAPTER, fetch=partial(personio.fetch_personio_jobs, max_text_length=settings.max_text_length)),
        replace(greenhouse.ADAPTER, fetch=partial(greenhouse.fetch_greenhouse_jobs, concurrency=settings.detail_concurrency)),
        lever.ADAPTER,
    )


class IngestService:
    def __init__(
        self,
        store: JobStore,
        *,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        adapters: Sequence[ProviderAdapter] | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.client = client
        self.adapters = tuple(adapters) if adapters is not None else build_adapters(self.settings)

    async def run(
        self,
        companies: Iterable[CompanyInput | dict[str, Any] | str | None],
    ) -> dict[str, list[dict[str, Any]]]:
        inputs = [self._coerce_input(item) for item in companies]
        with tracer.start_as_current_span("ingest.run") as span:
            span.set_attribute("company.count", len(inputs))
            if self.client is not None:
                results = await self._run_companies(self.client, inputs)
            else:
                async with httpx.AsyncClient(
                    follow_redirects=True,
                    headers={"User-Agent": self.settings.user_agent},
                ) as client:
                    results = await self._run_companies(client, inputs)
        logger.info("ingest run finished companies=%s entries=%s", len(inputs), len(results))
        return {"results": results}

    async def _run_companies(
        self,
        client: httpx.AsyncClient,
        companies: list[CompanyInput],
    ) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        for company_input in companies:
            website = company_input.website.strip()
            if not website:
                continue
            await self._ingest_company(client, website, results)
        return results

    async def _ingest_company(self, client: httpx.AsyncClient, website: str, results: list[dict[str, Any]]) -> None:
        name = company_name_from_url(website)
        domain = normalize_domain(website)
        matched = False
        total = 0

        with tracer.start_as_current_span("ingest.company") as span:
            span.set_attribute("company", name)
            for adapter in self.adapters:
                attempt = await self._attempt_provider(client, adapter, name, website, results)
                if attempt is None:
                    continue
                match, jobs = attempt
                matched = True
                for job in jobs:
                    job.domain = domain
                if jobs:
                    summary = await self.store.upsert_many(jobs)
                    logger.info(
                        "stored %s jobs company=%s provider=%s inserted=%s updated=%s",
                        summary.total,
                        name,
                        adapter.name,
                        summary.inserted,
                        summary.updated,
                    )
                total += len(jobs)
                results.append(
                    {"company": name, "provider": adapter.name, adapter.account_key: match.account, "count": len(jobs)}
                )
            span.set_attribute("job.count", total)

        if not matched:
            results.append({"company": name, "provider": None, "count": 0, "note": NO_PROVIDER_NOTE})
        results.append({"company": name, "total": total})

    async def _attempt_provider(
        self,
        client: httpx.AsyncClient,
        adapter: ProviderAdapter,
        name: str,
        website: str,
        results: list[dict[str, Any]],
    ) -> tuple[ProviderMatch, list[IngestJob]] | None:
        """Detect and fetch one provider; None means no match or a recorded error."""
        with tracer.start_as_current_span("ingest.provider") as span:
            span.set_attribute("company", name)
            span.set_attribute("provider", adapter.name)
            try:
                match = await adapter.detect(
                    client,
                    name,
                    website,
                    timeout_seconds=self.settings.probe_timeout_seconds,
                )
                if match is None:
                    return None
                jobs = await adapter.fetch(
                    client,
                    name,
                    website,
                    match,
                    timeout_seconds=self.settings.fetch_timeout_seconds,
                )
            except Exception as exc:
                logger.warning("provider attempt failed company=%s provider=%s", name, adapter.name, exc_info=True)
                span.record_exception(exc)
                results.append({"company": name, "provider": adapter.name, "error": str(exc)})
                return None
            span.set_attribute("job.count", len(jobs))

        return match, jobs

    @staticmethod
    def _coerce_input(item: CompanyInput | dict[str, Any] | str | None) -> CompanyInput:
        if isinstance(item, CompanyInput):
            return item
        if item is None:
            return CompanyInput()
        if isinstance(item, str):
            return CompanyInput(website=item)
        return CompanyInput.model_validate(item)
