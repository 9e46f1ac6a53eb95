from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

ProviderKind = Literal["greenhouse", "lever", "personio"]


class CompanyInput(BaseModel):
    website: str = ""
    name: str | None = None

    @field_validator("website", mode="before")
    @classmethod
    def blank_missing_website(cls, value: object) -> object:
        return "" if value is None else value


class IngestJob(BaseModel):
    company: str
    domain: str | None = None
    source: ProviderKind
    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    location: str | None = None
    seniority: str | None = None
    posted_at: datetime | str | None = None
    raw_text: str | None = None


class UpsertSummary(BaseModel):
    inserted: int = 0
    updated: int = 0
    total: int = 0
