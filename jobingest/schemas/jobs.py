from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

JobSortField = Literal["company", "title", "posted_at", "scraped_at", "location", "seniority"]
SortDir = Literal["asc", "desc"]
JOB_SORT_FIELDS: frozenset[str] = frozenset({"company", "title", "posted_at", "scraped_at", "location", "seniority"})


class JobsQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=200)
    title: str | None = None
    company: str | None = None
    source: str | None = None
    only_student: bool = False
    date_from: date | None = None
    date_to: date | None = None
    sort: str | None = Field(default=None, description="'field:asc' or 'field:desc'; unknown fields fall back to scraped_at desc.")

    def resolve_sort(self) -> tuple[JobSortField, SortDir]:
        if not self.sort:
            return "scraped_at", "desc"
        field, _, direction = self.sort.partition(":")
        if field not in JOB_SORT_FIELDS:
            return "scraped_at", "desc"
        return field, "desc" if direction.strip().lower() == "desc" else "asc"  # type: ignore[return-value]


class CompanyOut(BaseModel):
    id: int
    name: str
    domain: str | None = None
    source: str | None = None


class JobPostOut(BaseModel):
    id: int
    company_id: int
    title: str
    url: str
    location: str | None = None
    seniority: str | None = None
    posted_at: datetime | None = None
    raw_text: str = ""
    processed: bool = False
    scraped_at: datetime
    company: CompanyOut | None = None


class JobsPageMeta(BaseModel):
    total: int
    page: int
    limit: int
    page_count: int
    has_prev: bool
    has_next: bool


class JobsPage(BaseModel):
    data: list[JobPostOut] = Field(default_factory=list)
    meta: JobsPageMeta

    @classmethod
    def build(cls, *, items: list[JobPostOut], total: int, query: JobsQuery) -> "JobsPage":
        skip = (query.page - 1) * query.limit
        return cls(
            data=items,
            meta=JobsPageMeta(
                total=total,
                page=query.page,
                limit=query.limit,
                page_count=-(-total // query.limit),
                has_prev=query.page > 1,
                has_next=skip + len(items) < total,
            ),
        )


def student_match(title: str | None, seniority: str | None) -> bool:
    lowered_title = (title or "").lower()
    return (
        "werkstudent" in lowered_title
        or "working student" in lowered_title
        or "student" in (seniority or "").lower()
    )
