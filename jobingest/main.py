from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any

from jobingest.core.config import get_settings
from jobingest.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from jobingest.services.ingest import IngestService
from jobingest.services.repository import get_job_store


def read_websites(websites: list[str], file: str | None) -> list[str]:
    collected = [website.strip() for website in websites if website.strip()]
    if file:
        for line in Path(file).read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if stripped and not stripped.startswith("#"):
                collected.append(stripped)
    return collected


async def run_ingest(websites: list[str]) -> dict[str, list[dict[str, Any]]]:
    settings = get_settings()
    configure_logging(settings.log_level)
    telemetry_runtime = setup_telemetry(settings)
    store = get_job_store()
    try:
        return await IngestService(store, settings=settings).run(websites)
    finally:
        await store.close()
        shutdown_telemetry(telemetry_runtime)


def main() -> None:
    parser = argparse.ArgumentParser(description="Detect job boards for company websites and store their postings.")
    parser.add_argument("websites", nargs="*", help="Company website URLs, e.g. https://acme.io")
    parser.add_argument("--file", help="Text file with one website per line ('#' starts a comment)")
    args = parser.parse_args()

    websites = read_websites(args.websites, args.file)
    if not websites:
        parser.error("no websites given")

    output = asyncio.run(run_ingest(websites))
    print(json.dumps(output, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
