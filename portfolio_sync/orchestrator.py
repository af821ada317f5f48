"""Orchestrator coordinating repository discovery, curation and persistence"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Callable, Optional, Sequence

from portfolio_sync.config.settings import settings
from portfolio_sync.crawlers.github.client import GitHubPortfolioClient, sanitize_for_log, sanitize_log_extra
from portfolio_sync.crawlers.github.repository_source import RepositorySource
from portfolio_sync.models.candidate import CandidateRepository, RepositoryDetails
from portfolio_sync.models.collection import ProjectCollection
from portfolio_sync.models.project import ProjectRecord
from portfolio_sync.models.verdicts import SOURCE_EXISTING, EnhancedText
from portfolio_sync.services.deduplicator import DuplicateResolver
from portfolio_sync.services.enhancer import DescriptionEnhancer
from portfolio_sync.services.images import ImageSelector
from portfolio_sync.services.llm import LLMClient
from portfolio_sync.services.project_mapper import build_project_record, refresh_project_record
from portfolio_sync.services.relevance import RelevanceClassifier
from portfolio_sync.storage.data_store import DataFileFormatError, ProjectDataStore

logger = logging.getLogger(__name__)

ACTION_ADDED = "added"
ACTION_UPDATED = "updated"
ACTION_REMOVED = "removed"
ACTION_SKIPPED = "skipped"
ACTION_FILTERED = "filtered"


def split_full_name(full_name: str) -> tuple[str, str]:
    owner, _, name = (full_name or "").strip().partition("/")
    if not owner or not name or "/" in name:
        raise ValueError(f"Expected '<owner>/<repo>', got {full_name!r}")
    return owner, name


def _default_llm() -> Optional[LLMClient]:
    try:
        llm = LLMClient()
    except ValueError as exc:
        logger.warning(f"LLM disabled: {exc}")
        return None
    if not llm.is_available:
        logger.warning(
            "No LLM API key configured, using heuristic classification and formatting",
            extra=sanitize_log_extra(provider=llm.provider),
        )
        return None
    return llm


class PortfolioSyncOrchestrator:
    """Runs full and incremental portfolio syncs against one data file."""

    def __init__(
        self,
        *,
        github_client_factory: Callable[[], Any] = GitHubPortfolioClient,
        source_factory: Callable[[Any], Any] = RepositorySource,
        data_store: ProjectDataStore | None = None,
        llm: LLMClient | None = None,
        classifier: RelevanceClassifier | None = None,
        enhancer: DescriptionEnhancer | None = None,
        resolver: DuplicateResolver | None = None,
        image_selector: ImageSelector | None = None,
        repo_delay_seconds: float | None = None,
    ) -> None:
        needs_llm = llm is None and None in (classifier, enhancer, resolver, image_selector)
        shared_llm = llm if llm is not None else (_default_llm() if needs_llm else None)

        self._github_client_factory = github_client_factory
        self._source_factory = source_factory
        self.data_store = data_store or ProjectDataStore()
        self.classifier = classifier or RelevanceClassifier(shared_llm)
        self.enhancer = enhancer or DescriptionEnhancer(shared_llm)
        self.resolver = resolver or DuplicateResolver(shared_llm)
        self.image_selector = image_selector or ImageSelector(llm=shared_llm)
        self.repo_delay_seconds = (
            repo_delay_seconds if repo_delay_seconds is not None else settings.REPO_PROCESS_DELAY_SECONDS
        )

    async def run_full_sync(
        self,
        *,
        owner: str | None = None,
        organizations: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        """
        Rebuild the whole portfolio from GitHub

        Args:
            owner: GitHub username; defaults to GITHUB_USERNAME
            organizations: Organizations to scan; defaults to GITHUB_ORGS

        Returns:
            Dictionary with sync statistics

        Raises:
            RepositorySourceError: Owner repositories could not be listed
            DataStoreError: The data file could not be written
        """
        owner = owner or settings.GITHUB_USERNAME
        orgs = list(settings.github_organizations if organizations is None else organizations)

        stats: dict[str, Any] = {
            "mode": "full",
            "owner": owner,
            "started_at": datetime.now(UTC).isoformat(),
            "candidates": 0,
            "processed": 0,
            "filtered_out": 0,
            "duplicates_removed": 0,
            "failed": 0,
            "total": 0,
            "by_year": {},
            "topics": 0,
            "errors": [],
            "success": False,
        }
        logger.info("Full portfolio sync started", extra=sanitize_log_extra(owner=owner, organizations=orgs))

        with self.data_store.lock():
            try:
                previous = self.data_store.load()
            except DataFileFormatError as exc:
                logger.warning(f"Existing data file unreadable, prior enhancements ignored: {exc}")
                stats["errors"].append(f"data file: {sanitize_for_log(str(exc), key='error')}")
                previous = ProjectCollection()

            records: list[ProjectRecord] = []
            async with self._github_client_factory() as client:
                source = self._source_factory(client)
                candidates = await source.fetch_candidates(owner, orgs)
                stats["candidates"] = len(candidates)

                for index, candidate in enumerate(candidates, 1):
                    logger.info(f"[{index}/{len(candidates)}] Processing {candidate.full_name}")
                    try:
                        record = await self._process_candidate(source, candidate, owner, previous)
                    except Exception as exc:
                        sanitized_error = sanitize_for_log(str(exc), key="error")
                        logger.exception(
                            "Repository processing failed",
                            extra=sanitize_log_extra(repository=candidate.full_name, error=sanitized_error),
                        )
                        stats["failed"] += 1
                        stats["errors"].append(f"{candidate.full_name}: {sanitized_error}")
                        continue

                    if record is None:
                        stats["filtered_out"] += 1
                    else:
                        records.append(record)
                        stats["processed"] += 1

                    if self.repo_delay_seconds > 0:
                        await asyncio.sleep(self.repo_delay_seconds)

            resolution = await self.resolver.resolve(records, owner)
            collection = ProjectCollection(resolution.unique)
            stats["duplicates_removed"] = len(resolution.removed)
            self.data_store.write(collection)

        stats.update(self._summarize(collection))
        stats["completed_at"] = datetime.now(UTC).isoformat()
        stats["success"] = True
        logger.info(
            "Full portfolio sync completed",
            extra=sanitize_log_extra(
                total=stats["total"],
                filtered_out=stats["filtered_out"],
                duplicates_removed=stats["duplicates_removed"],
                failed=stats["failed"],
            ),
        )
        return stats

    async def run_incremental_sync(self, full_name: str, *, owner: str | None = None) -> dict[str, Any]:
        """
        Apply a single repository change to the existing data file

        Args:
            full_name: Repository as '<owner>/<repo>'
            owner: Portfolio owner; defaults to GITHUB_USERNAME

        Returns:
            Dictionary with the action taken and sync statistics

        Raises:
            ValueError: full_name is malformed
            RepositorySourceError: The repository could not be fetched
            DataFileFormatError: The existing data file could not be parsed
            DataStoreError: The data file could not be written
        """
        repo_owner, repo_name = split_full_name(full_name)
        owner = owner or settings.GITHUB_USERNAME

        stats: dict[str, Any] = {
            "mode": "incremental",
            "repository": full_name,
            "started_at": datetime.now(UTC).isoformat(),
            "action": None,
            "reason": None,
            "success": False,
        }
        logger.info("Incremental sync started", extra=sanitize_log_extra(repository=full_name))

        with self.data_store.lock():
            collection = self.data_store.load()

            async with self._github_client_factory() as client:
                source = self._source_factory(client)
                candidate = await source.get_repository(repo_owner, repo_name)
                details = await source.get_repository_details(candidate)
                existing = collection.get(candidate.name)

                if details.is_documentation_only:
                    if existing is not None:
                        collection.remove(candidate.name)
                        self.data_store.write(collection)
                        stats["action"] = ACTION_REMOVED
                    else:
                        stats["action"] = ACTION_SKIPPED
                    stats["reason"] = "Documentation-only repository"

                elif existing is not None:
                    collection.add(refresh_project_record(existing, candidate))
                    collection.move_to_front(candidate.name)
                    self.data_store.write(collection)
                    stats["action"] = ACTION_UPDATED

                else:
                    verdict = await self.classifier.classify(candidate, owner)
                    stats["reason"] = verdict.reason
                    if not verdict.is_relevant:
                        stats["action"] = ACTION_FILTERED
                    else:
                        record = await self._build_record(candidate, details, previous=None)
                        collection.prepend(record)
                        self.data_store.write(collection)
                        stats["action"] = ACTION_ADDED

        stats["total"] = len(collection)
        stats["completed_at"] = datetime.now(UTC).isoformat()
        stats["success"] = True
        logger.info(
            f"Incremental sync completed: {full_name} {stats['action']}",
            extra=sanitize_log_extra(reason=stats["reason"], total=stats["total"]),
        )
        return stats

    async def _process_candidate(
        self,
        source: Any,
        candidate: CandidateRepository,
        owner: str,
        previous: ProjectCollection,
    ) -> ProjectRecord | None:
        verdict = await self.classifier.classify(candidate, owner)
        if not verdict.is_relevant:
            logger.info(f"Filtered out {candidate.full_name}: {verdict.reason}")
            return None

        details = await source.get_repository_details(candidate)
        if details.is_documentation_only:
            logger.info(f"Filtered out {candidate.full_name}: documentation-only repository")
            return None

        return await self._build_record(candidate, details, previous=previous.get(candidate.name))

    async def _build_record(
        self,
        candidate: CandidateRepository,
        details: RepositoryDetails,
        *,
        previous: ProjectRecord | None,
    ) -> ProjectRecord:
        description = candidate.description or details.readme_description or None
        topics = list(candidate.topics)

        enhanced = self._reusable_enhancement(candidate, description, topics, previous)
        if enhanced is None:
            enhanced = await self.enhancer.enhance(candidate.name, description, topics, candidate.language)

        record = build_project_record(candidate, enhanced, languages=details.languages)
        if enhanced.source == SOURCE_EXISTING:
            record = replace(record, description=dict(previous.description))

        if previous is not None and previous.image != self.image_selector.default_image:
            image = previous.image
        else:
            image = await self.image_selector.select(record)
        return replace(record, image=image)

    def _reusable_enhancement(
        self,
        candidate: CandidateRepository,
        description: str | None,
        topics: list[str],
        previous: ProjectRecord | None,
    ) -> EnhancedText | None:
        """Keep a previously enhanced title/description instead of asking again."""
        if previous is None or not previous.primary_description:
            return None
        fallback = self.enhancer.fallback(candidate.name, description, topics, candidate.language)
        if previous.title == fallback.title:
            return None
        return EnhancedText(previous.title, previous.primary_description, SOURCE_EXISTING)

    @staticmethod
    def _summarize(collection: ProjectCollection) -> dict[str, Any]:
        topics = {topic.lower() for record in collection for topic in record.topics}
        return {
            "total": len(collection),
            "by_year": collection.by_year(),
            "topics": len(topics),
        }
