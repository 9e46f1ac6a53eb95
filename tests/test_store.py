from __future__ import annotations

import asyncio
from collections.abc import Iterator
from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest

from jobingest.schemas.ingest import IngestJob
from jobingest.schemas.jobs import JobsQuery
from jobingest.services.store import InMemoryStore, coerce_posted_at

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _clock(start: datetime = T0) -> Iterator[datetime]:
    current = start
    while True:
        yield current
        current += timedelta(minutes=1)


def _store() -> InMemoryStore:
    ticks = _clock()
    return InMemoryStore(clock=lambda: next(ticks))


def _job(url: str, **overrides: Any) -> IngestJob:
    values: dict[str, Any] = {
        "company": "acme",
        "domain": "acme.io",
        "source": "greenhouse",
        "title": "Engineer",
        "url": url,
        "location": "Berlin",
        "seniority": "",
        "posted_at": "2024-02-01T09:00:00Z",
        "raw_text": "<p>Hi</p>",
    }
    values.update(overrides)
    return IngestJob(**values)


def test_upsert_many_counts_inserts_then_updates() -> None:
    store = _store()

    first = asyncio.run(store.upsert_many([_job("https://x.test/1"), _job("https://x.test/2")]))
    second = asyncio.run(store.upsert_many([_job("https://x.test/1", title="Senior Engineer")]))

    assert (first.inserted, first.updated, first.total) == (2, 0, 2)
    assert (second.inserted, second.updated, second.total) == (0, 1, 1)
    assert len(store.job_posts) == 2
    updated = store.job_posts["https://x.test/1"]
    assert updated.title == "Senior Engineer"
    assert updated.processed is False
    assert updated.scraped_at > store.job_posts["https://x.test/2"].scraped_at


def test_upsert_many_is_idempotent_for_the_same_batch() -> None:
    store = _store()
    batch = [_job("https://x.test/1"), _job("https://x.test/2")]

    asyncio.run(store.upsert_many(batch))
    asyncio.run(store.upsert_many(batch))

    assert len(store.job_posts) == 2
    assert len(store.companies) == 1


def test_upsert_many_reuses_company_by_domain_and_refreshes_non_empty_fields() -> None:
    store = _store()

    asyncio.run(store.upsert_many([_job("https://x.test/1", company="Acme", source="personio")]))
    asyncio.run(store.upsert_many([_job("https://x.test/2", company="Acme GmbH", source="lever")]))
    asyncio.run(store.upsert_many([_job("https://x.test/3", company="Acme GmbH", domain=None, source="lever")]))

    assert len(store.companies) == 1
    company = next(iter(store.companies.values()))
    assert company.name == "Acme GmbH"
    assert company.domain == "acme.io"
    assert company.source == "lever"
    assert {record.company_id for record in store.job_posts.values()} == {company.id}


def test_upsert_many_keys_domainless_companies_by_name() -> None:
    store = _store()

    asyncio.run(
        store.upsert_many(
            [
                _job("https://x.test/1", company="robco", domain=None),
                _job("https://x.test/2", company="robco", domain=None),
                _job("https://x.test/3", company="umbrella", domain=None),
            ]
        )
    )

    assert sorted(record.name for record in store.companies.values()) == ["robco", "umbrella"]


def test_upsert_many_stores_unparsable_dates_as_null() -> None:
    store = _store()

    asyncio.run(
        store.upsert_many(
            [
                _job("https://x.test/1", posted_at="not a date"),
                _job("https://x.test/2", posted_at=""),
                _job("https://x.test/3", posted_at=None),
            ]
        )
    )

    assert [record.posted_at for record in store.job_posts.values()] == [None, None, None]


def test_upsert_many_applies_nothing_when_a_batch_fails() -> None:
    calls = 0

    def flaky_clock() -> datetime:
        nonlocal calls
        calls += 1
        if calls == 2:
            raise RuntimeError("clock broke")
        return T0

    store = InMemoryStore(clock=flaky_clock)

    with pytest.raises(RuntimeError):
        asyncio.run(store.upsert_many([_job("https://x.test/1"), _job("https://x.test/2")]))

    assert store.job_posts == {}
    assert store.companies == {}


def test_coerce_posted_at() -> None:
    assert coerce_posted_at("2024-01-05") == datetime(2024, 1, 5, tzinfo=timezone.utc)
    assert coerce_posted_at("2024-01-01T10:00:00-05:00") == datetime(2024, 1, 1, 15, 0, tzinfo=timezone.utc)
    assert coerce_posted_at("2024-01-01T00:00:00Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert coerce_posted_at(datetime(2024, 1, 1, 8, 30)) == datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)
    assert coerce_posted_at("yesterday") is None
    assert coerce_posted_at(12345) is None


def _seeded_store() -> InMemoryStore:
    store = _store()
    asyncio.run(
        store.upsert_many(
            [
                _job("https://x.test/1", title="Backend Engineer", posted_at="2024-01-10"),
                _job("https://x.test/2", title="Werkstudent Data", posted_at="2024-01-20"),
                _job(
                    "https://x.test/3",
                    company="robco",
                    domain="robco.co.uk",
                    source="lever",
                    title="Designer",
                    seniority="Student",
                    posted_at=None,
                ),
            ]
        )
    )
    return store


def test_list_jobs_filters() -> None:
    store = _seeded_store()

    def titles(**kwargs: Any) -> list[str]:
        page = asyncio.run(store.list_jobs(JobsQuery(sort="title:asc", **kwargs)))
        return [item.title for item in page.data]

    assert titles(title="engineer") == ["Backend Engineer"]
    assert titles(company="ROB") == ["Designer"]
    assert titles(source="greenhouse") == ["Backend Engineer", "Werkstudent Data"]
    assert titles(only_student=True) == ["Designer", "Werkstudent Data"]
    assert titles(date_from=date(2024, 1, 15)) == ["Werkstudent Data"]
    assert titles(date_to=date(2024, 1, 10)) == ["Backend Engineer"]


def test_list_jobs_sorts_and_paginates() -> None:
    store = _seeded_store()

    page = asyncio.run(store.list_jobs(JobsQuery(sort="posted_at:desc", limit=2, page=1)))
    assert [item.title for item in page.data] == ["Designer", "Werkstudent Data"]
    assert page.meta.model_dump() == {
        "total": 3,
        "page": 1,
        "limit": 2,
        "page_count": 2,
        "has_prev": False,
        "has_next": True,
    }
    assert page.data[0].company is not None
    assert page.data[0].company.domain == "robco.co.uk"

    last = asyncio.run(store.list_jobs(JobsQuery(sort="posted_at:desc", limit=2, page=2)))
    assert [item.title for item in last.data] == ["Backend Engineer"]
    assert last.meta.has_prev is True
    assert last.meta.has_next is False


def test_list_jobs_defaults_to_newest_scrape_first() -> None:
    store = _seeded_store()

    page = asyncio.run(store.list_jobs(JobsQuery(sort="bogus:asc")))

    assert [item.url for item in page.data] == ["https://x.test/3", "https://x.test/2", "https://x.test/1"]


def test_find_one() -> None:
    store = _seeded_store()
    record = store.job_posts["https://x.test/2"]

    found = asyncio.run(store.find_one(record.id))

    assert found is not None
    assert found.title == "Werkstudent Data"
    assert found.company is not None and found.company.name == "acme"
    assert asyncio.run(store.find_one(999)) is None


def test_upsert_many_shares_one_company_for_blank_name_and_domain() -> None:
    store = _store()

    asyncio.run(
        store.upsert_many(
            [
                _job("https://x.test/1", company="", domain=None),
                _job("https://x.test/2", company="  ", domain=None),
            ]
        )
    )
    asyncio.run(store.upsert_many([_job("https://x.test/3", company="", domain="")]))

    assert len(store.companies) == 1
    assert next(iter(store.companies.values())).name == ""
