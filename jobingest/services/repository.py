"""Postgres-backed job store.

Expects two tables managed outside this package:

- ``companies(id, name, domain unique, source)``
- ``job_posts(id, company_id, title, url unique, location, seniority,
  posted_at, raw_text, processed, scraped_at)``
"""

from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from jobingest.core.config import get_settings
from jobingest.schemas.ingest import IngestJob, UpsertSummary
from jobingest.schemas.jobs import CompanyOut, JobPostOut, JobsPage, JobsQuery
from jobingest.services.store import InMemoryStore, JobStore, coerce_posted_at, day_bounds


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


JOB_SORT_EXPRESSIONS = {
    "company": "c.name",
    "title": "j.title",
    "posted_at": "j.posted_at",
    "scraped_at": "j.scraped_at",
    "location": "j.location",
    "seniority": "j.seniority",
}

_JOB_COLUMNS = """
  j.id,
  j.company_id,
  j.title,
  j.url,
  j.location,
  j.seniority,
  j.posted_at,
  j.raw_text,
  j.processed,
  j.scraped_at,
  c.name as company_name,
  c.domain as company_domain,
  c.source as company_source
"""


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def upsert_many(self, jobs: Sequence[IngestJob]) -> UpsertSummary:
        if not jobs:
            return UpsertSummary()

        pool = await self._get_pool()
        inserted = 0
        updated = 0
        company_ids: dict[tuple[str, str], int] = {}
        async with pool.acquire() as conn:
            async with conn.transaction():
                for job in jobs:
                    domain = self._coerce_text(job.domain)
                    key = ("domain", domain) if domain else ("name", self._coerce_text(job.company) or "")
                    company_id = company_ids.get(key)
                    if company_id is None:
                        company_id = await self._upsert_company(conn, job=job, domain=domain)
                        company_ids[key] = company_id

                    row = await conn.fetchrow(
                        """
                        insert into job_posts (
                          company_id, title, url, location, seniority, posted_at, raw_text, processed, scraped_at
                        )
                        values ($1, $2, $3, $4, $5, $6, $7, false, now())
                        on conflict (url) do update
                        set
                          company_id = excluded.company_id,
                          title = excluded.title,
                          location = excluded.location,
                          seniority = excluded.seniority,
                          posted_at = excluded.posted_at,
                          raw_text = excluded.raw_text,
                          scraped_at = excluded.scraped_at
                        returning (xmax = 0) as inserted
                        """,
                        company_id,
                        job.title,
                        job.url,
                        self._coerce_text(job.location),
                        self._coerce_text(job.seniority),
                        coerce_posted_at(job.posted_at),
                        job.raw_text or "",
                    )
                    if row["inserted"]:
                        inserted += 1
                    else:
                        updated += 1

        return UpsertSummary(inserted=inserted, updated=updated, total=len(jobs))

    async def find_one(self, job_id: int) -> JobPostOut | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            select {_JOB_COLUMNS}
            from job_posts j
            join companies c on c.id = j.company_id
            where j.id = $1
            """,
            job_id,
        )
        return self._job_row_to_out(row) if row else None

    async def list_jobs(self, query: JobsQuery) -> JobsPage:
        pool = await self._get_pool()
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        title = self._coerce_text(query.title)
        if title:
            conditions.append(f"j.title ilike {bind(f'%{title}%')}")
        company = self._coerce_text(query.company)
        if company:
            conditions.append(f"c.name ilike {bind(f'%{company}%')}")
        source = self._coerce_text(query.source)
        if source:
            conditions.append(f"c.source = {bind(source)}")
        if query.only_student:
            conditions.append(
                "(j.title ilike '%werkstudent%' or j.title ilike '%working student%' "
                "or coalesce(j.seniority, '') ilike '%student%')"
            )
        lower, upper = day_bounds(query.date_from, query.date_to)
        if lower:
            conditions.append(f"j.posted_at >= {bind(lower)}")
        if upper:
            conditions.append(f"j.posted_at <= {bind(upper)}")

        where_sql = " and ".join(conditions) if conditions else "true"
        field, direction = query.resolve_sort()
        order_by_sql = f"{JOB_SORT_EXPRESSIONS[field]} {direction}, j.id asc"
        filter_params = list(params)
        limit_token = bind(query.limit)
        offset_token = bind((query.page - 1) * query.limit)

        async with pool.acquire() as conn:
            async with conn.transaction(readonly=True):
                total = await conn.fetchval(
                    f"""
                    select count(*)
                    from job_posts j
                    join companies c on c.id = j.company_id
                    where {where_sql}
                    """,
                    *filter_params,
                )
                rows = await conn.fetch(
                    f"""
                    select {_JOB_COLUMNS}
                    from job_posts j
                    join companies c on c.id = j.company_id
                    where {where_sql}
                    order by {order_by_sql}
                    limit {limit_token}
                    offset {offset_token}
                    """,
                    *params,
                )
        items = [self._job_row_to_out(row) for row in rows]
        return JobsPage.build(items=items, total=int(total or 0), query=query)

    async def _upsert_company(self, conn: asyncpg.Connection, *, job: IngestJob, domain: str | None) -> int:
        given_name = self._coerce_text(job.company) or ""
        name = given_name or domain or ""
        source = self._coerce_text(job.source)
        if domain:
            # a blank incoming name must not replace the stored one with the domain fallback
            return await conn.fetchval(
                """
                insert into companies (name, domain, source)
                values ($1, $2, $3)
                on conflict (domain) do update
                set
                  name = coalesce(nullif($4, ''), companies.name),
                  source = coalesce(nullif(excluded.source, ''), companies.source)
                returning id
                """,
                name,
                domain,
                source,
                given_name,
            )

        existing_id = await conn.fetchval(
            "select id from companies where name = $1 order by id limit 1 for update",
            name,
        )
        if existing_id is not None:
            if source:
                await conn.execute("update companies set source = $2 where id = $1", existing_id, source)
            return existing_id
        return await conn.fetchval(
            "insert into companies (name, domain, source) values ($1, null, $2) returning id",
            name,
            source,
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("JOBINGEST_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _job_row_to_out(row: asyncpg.Record) -> JobPostOut:
        return JobPostOut(
            id=row["id"],
            company_id=row["company_id"],
            title=row["title"],
            url=row["url"],
            location=row["location"],
            seniority=row["seniority"],
            posted_at=row["posted_at"],
            raw_text=row["raw_text"] or "",
            processed=bool(row["processed"]),
            scraped_at=row["scraped_at"],
            company=CompanyOut(
                id=row["company_id"],
                name=row["company_name"],
                domain=row["company_domain"],
                source=row["company_source"],
            ),
        )

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)


@lru_cache
def get_job_store() -> JobStore:
    settings = get_settings()
    if not settings.database_url:
        return InMemoryStore()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
