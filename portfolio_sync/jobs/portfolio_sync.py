"""Portfolio full and incremental sync entrypoints."""

from __future__ import annotations

import re
from typing import Any, Sequence

from portfolio_sync.orchestrator import PortfolioSyncOrchestrator

_GITHUB_URL = re.compile(r"^(?:https?://)?(?:www\.)?github\.com/", re.IGNORECASE)


def parse_repository_ref(raw: Any) -> str:
    """Normalize 'owner/repo' or a GitHub URL into 'owner/repo'."""
    text = str(raw or "").strip()
    text = _GITHUB_URL.sub("", text)
    if text.endswith(".git"):
        text = text[: -len(".git")]
    text = text.strip("/")

    owner, _, name = text.partition("/")
    if not owner or not name or "/" in name:
        raise ValueError(f"Repository must look like '<owner>/<repo>', got {raw!r}")
    return f"{owner}/{name}"


def normalize_organizations(raw: str | Sequence[str] | None) -> list[str] | None:
    """Normalize an organization selector; None means use configured defaults."""
    if raw is None:
        return None

    if isinstance(raw, str):
        requested = [part.strip() for part in raw.split(",")]
    else:
        requested = [str(part).strip() for part in raw]

    deduped: list[str] = []
    seen: set[str] = set()
    for org in requested:
        if not org or org.lower() in seen:
            continue
        seen.add(org.lower())
        deduped.append(org)
    return deduped


async def run_full_sync(
    *,
    orchestrator: PortfolioSyncOrchestrator | None = None,
    owner: str | None = None,
    organizations: str | Sequence[str] | None = None,
) -> dict[str, Any]:
    """Rebuild the portfolio data file from every discovered repository."""
    job_orchestrator = orchestrator or PortfolioSyncOrchestrator()
    return await job_orchestrator.run_full_sync(
        owner=owner,
        organizations=normalize_organizations(organizations),
    )


async def run_incremental_sync(
    repository: str,
    *,
    orchestrator: PortfolioSyncOrchestrator | None = None,
    owner: str | None = None,
) -> dict[str, Any]:
    """Add, refresh or remove the single repository that changed."""
    full_name = parse_repository_ref(repository)
    job_orchestrator = orchestrator or PortfolioSyncOrchestrator()
    return await job_orchestrator.run_incremental_sync(full_name, owner=owner)
