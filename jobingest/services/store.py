from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone
from typing import Any, Protocol

from jobingest.schemas.ingest import IngestJob, UpsertSummary
from jobingest.schemas.jobs import CompanyOut, JobPostOut, JobsPage, JobsQuery, student_match


class JobStore(Protocol):
    async def upsert_many(self, jobs: Sequence[IngestJob]) -> UpsertSummary: ...

    async def find_one(self, job_id: int) -> JobPostOut | None: ...

    async def list_jobs(self, query: JobsQuery) -> JobsPage: ...

    async def close(self) -> None: ...


def coerce_posted_at(value: Any) -> datetime | None:
    """Parse a provider date; anything unparsable becomes None instead of raising."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def day_bounds(date_from: date | None, date_to: date | None) -> tuple[datetime | None, datetime | None]:
    lower = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    upper = datetime.combine(date_to, time(23, 59, 59), tzinfo=timezone.utc) if date_to else None
    return lower, upper


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(slots=True)
class CompanyRecord:
    id: int
    name: str
    domain: str | None
    source: str | None


@dataclass(slots=True)
class JobPostRecord:
    id: int
    company_id: int
    title: str
    url: str
    location: str | None
    seniority: str | None
    posted_at: datetime | None
    raw_text: str
    processed: bool
    scraped_at: datetime


class InMemoryStore:
    """Process-local job store used when no database is configured.

    A batch is applied to copies under a lock and swapped in at the end, so
    readers never see half of a batch and a failing batch changes nothing.
    """

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self.companies: dict[int, CompanyRecord] = {}
        self.job_posts: dict[str, JobPostRecord] = {}
        self._next_company_id = 1
        self._next_job_id = 1
        self._lock = asyncio.Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def upsert_many(self, jobs: Sequence[IngestJob]) -> UpsertSummary:
        async with self._lock:
            companies = {company_id: replace(record) for company_id, record in self.companies.items()}
            job_posts = {url: replace(record) for url, record in self.job_posts.items()}
            next_company_id = self._next_company_id
            next_job_id = self._next_job_id
            inserted = 0
            updated = 0

            for job in jobs:
                company = self._match_company(companies, job)
                if company is None:
                    company = CompanyRecord(
                        id=next_company_id,
                        name=_clean(job.company) or _clean(job.domain) or "",
                        domain=_clean(job.domain),
                        source=_clean(job.source),
                    )
                    companies[company.id] = company
                    next_company_id += 1
                else:
                    company.name = _clean(job.company) or company.name
                    company.domain = _clean(job.domain) or company.domain
                    company.source = _clean(job.source) or company.source

                now = self._clock()
                existing = job_posts.get(job.url)
                if existing is not None:
                    existing.company_id = company.id
                    existing.title = job.title
                    existing.location = _clean(job.location)
                    existing.seniority = _clean(job.seniority)
                    existing.posted_at = coerce_posted_at(job.posted_at)
                    existing.raw_text = job.raw_text or ""
                    existing.scraped_at = now
                    updated += 1
                else:
                    job_posts[job.url] = JobPostRecord(
                        id=next_job_id,
                        company_id=company.id,
                        title=job.title,
                        url=job.url,
                        location=_clean(job.location),
                        seniority=_clean(job.seniority),
                        posted_at=coerce_posted_at(job.posted_at),
                        raw_text=job.raw_text or "",
                        processed=False,
                        scraped_at=now,
                    )
                    next_job_id += 1
                    inserted += 1

            self.companies = companies
            self.job_posts = job_posts
            self._next_company_id = next_company_id
            self._next_job_id = next_job_id

        return UpsertSummary(inserted=inserted, updated=updated, total=len(jobs))

    async def find_one(self, job_id: int) -> JobPostOut | None:
        for record in self.job_posts.values():
            if record.id == job_id:
                return self._to_out(record)
        return None

    async def list_jobs(self, query: JobsQuery) -> JobsPage:
        lower, upper = day_bounds(query.date_from, query.date_to)
        matches: list[JobPostRecord] = []
        for record in self.job_posts.values():
            company = self.companies.get(record.company_id)
            if query.title and query.title.lower() not in record.title.lower():
                continue
            if query.company and (company is None or query.company.lower() not in company.name.lower()):
                continue
            if query.source and (company is None or company.source != query.source):
                continue
            if query.only_student and not student_match(record.title, record.seniority):
                continue
            if lower and (record.posted_at is None or record.posted_at < lower):
                continue
            if upper and (record.posted_at is None or record.posted_at > upper):
                continue
            matches.append(record)

        field, direction = query.resolve_sort()

        def sort_key(record: JobPostRecord) -> tuple[bool, Any]:
            if field == "company":
                company = self.companies.get(record.company_id)
                value: Any = company.name if company else None
            else:
                value = getattr(record, field)
            return (value is None, value if value is not None else "")

        matches.sort(key=sort_key, reverse=direction == "desc")
        skip = (query.page - 1) * query.limit
        page = [self._to_out(record) for record in matches[skip : skip + query.limit]]
        return JobsPage.build(items=page, total=len(matches), query=query)

    async def close(self) -> None:
        return None

    @staticmethod
    def _match_company(companies: dict[int, CompanyRecord], job: IngestJob) -> CompanyRecord | None:
        domain = _clean(job.domain)
        if domain:
            return next((record for record in companies.values() if record.domain == domain), None)
        name = _clean(job.company) or ""
        return next((record for record in companies.values() if record.name == name), None)

    def _to_out(self, record: JobPostRecord) -> JobPostOut:
        company = self.companies.get(record.company_id)
        return JobPostOut(
            id=record.id,
            company_id=record.company_id,
            title=record.title,
            url=record.url,
            location=record.location,
            seniority=record.seniority,
            posted_at=record.posted_at,
            raw_text=record.raw_text,
            processed=record.processed,
            scraped_at=record.scraped_at,
            company=CompanyOut(id=company.id, name=company.name, domain=company.domain, source=company.source)
            if company
            else None,
        )
