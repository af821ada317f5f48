"""Candidate repository discovery across owned, organization and contributed repos."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Optional, Sequence

from portfolio_sync.config.settings import settings
from portfolio_sync.crawlers.github.client import GitHubPortfolioClient, sanitize_log_extra
from portfolio_sync.crawlers.github.contracts import FetchResult, FetchState
from portfolio_sync.models.candidate import CandidateRepository, RepositoryDetails
from portfolio_sync.models.project import parse_timestamp
from portfolio_sync.services.similarity import normalize_description, normalize_repo_name, string_similarity

logger = logging.getLogger(__name__)

README_DESCRIPTION_MIN_CHARS = 20
README_DESCRIPTION_MAX_CHARS = 200

DOCUMENTATION_FILE_NAMES = {
    ".gitignore",
    ".gitattributes",
    ".editorconfig",
    "license",
    "licence",
    "copying",
    "authors",
    "contributing",
    "changelog",
    "code_of_conduct",
    "notice",
}
DOCUMENTATION_EXTENSIONS = (".md", ".markdown", ".txt", ".rst", ".adoc", ".pdf")

_README_SKIP_PREFIXES = ("#", "[![", "![", "---", "***", "===", "<", "```", "|", ">")
_MARKDOWN_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_HTML_TAG = re.compile(r"<[^>]+>")
_FORMATTING = re.compile(r"[*_`]")
_WHITESPACE = re.compile(r"\s+")


class RepositorySourceError(RuntimeError):
    """Raised when the repository source itself is unreachable."""


def extract_readme_description(readme: Optional[str]) -> str:
    """First substantial README line with markdown syntax stripped."""

    if not readme:
        return ""

    for line in readme.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith(_README_SKIP_PREFIXES):
            continue

        text = _MARKDOWN_IMAGE.sub("", trimmed)
        text = _MARKDOWN_LINK.sub(r"\1", text)
        text = _HTML_TAG.sub("", text)
        text = _FORMATTING.sub("", text)
        text = _WHITESPACE.sub(" ", text).strip()
        if len(text) <= README_DESCRIPTION_MIN_CHARS:
            continue

        if len(text) > README_DESCRIPTION_MAX_CHARS:
            text = text[: README_DESCRIPTION_MAX_CHARS - 3].rstrip() + "..."
        return text

    return ""


def is_documentation_only(contents: FetchResult[Any]) -> Optional[bool]:
    """True when the root listing holds only docs, None when it is unknown."""

    if contents.is_empty:
        return True
    if not contents.is_ok or not isinstance(contents.data, list):
        return None

    for entry in contents.data:
        if not isinstance(entry, dict):
            return None
        if entry.get("type") != "file":
            return False
        name = str(entry.get("name") or "").lower()
        stem = name.rsplit(".", 1)[0] if "." in name[1:] else name
        if name in DOCUMENTATION_FILE_NAMES or stem in DOCUMENTATION_FILE_NAMES:
            continue
        if name.startswith("readme") or name.endswith(DOCUMENTATION_EXTENSIONS):
            continue
        return False
    return True


class RepositorySource:
    """Discover portfolio candidates for one GitHub owner"""

    def __init__(
        self,
        client: GitHubPortfolioClient,
        *,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        commit_search_pages: Optional[int] = None,
        page_delay_seconds: Optional[float] = None,
        portfolio_topic: Optional[str] = None,
        name_similarity_threshold: Optional[float] = None,
        description_similarity_threshold: Optional[float] = None,
    ):
        self.client = client
        self.page_size = page_size if page_size is not None else settings.GITHUB_PAGE_SIZE
        self.max_pages = max_pages if max_pages is not None else settings.GITHUB_MAX_PAGES
        self.commit_search_pages = (
            commit_search_pages if commit_search_pages is not None else settings.GITHUB_COMMIT_SEARCH_PAGES
        )
        self.page_delay_seconds = (
            page_delay_seconds if page_delay_seconds is not None else settings.GITHUB_PAGE_DELAY_SECONDS
        )
        self.portfolio_topic = (portfolio_topic or settings.PORTFOLIO_TOPIC).lower()
        self.name_similarity_threshold = (
            name_similarity_threshold
            if name_similarity_threshold is not None
            else settings.PREFILTER_NAME_SIMILARITY_THRESHOLD
        )
        self.description_similarity_threshold = (
            description_similarity_threshold
            if description_similarity_threshold is not None
            else settings.PREFILTER_DESCRIPTION_SIMILARITY_THRESHOLD
        )

    async def fetch_candidates(
        self,
        owner: str,
        organizations: Sequence[str] = (),
    ) -> list[CandidateRepository]:
        """
        Collect, filter and pre-deduplicate candidate repositories

        Args:
            owner: Portfolio owner's GitHub username
            organizations: Organizations whose repositories the owner contributed to

        Returns:
            Candidates ordered owned first, then by stars and recency

        Raises:
            RepositorySourceError: The owner's repository listing is unreachable
        """
        owned = await self.fetch_owned(owner)
        logger.info(f"Found {len(owned)} owned repositories for {owner}")

        organization_repos: list[CandidateRepository] = []
        for org in organizations:
            org_candidates = await self.fetch_organization(org, owner)
            logger.info(f"Found {len(org_candidates)} contributed repositories in {org}")
            organization_repos.extend(org_candidates)

        known = {candidate.full_name.lower() for candidate in owned + organization_repos}
        discovered = await self.fetch_commit_contributions(owner, known)
        logger.info(f"Discovered {len(discovered)} repositories through commit search")

        merged = self.merge(owned, organization_repos, discovered)
        included = [candidate for candidate in merged if self.should_include(candidate, owner)]
        logger.info(f"Inclusion filter kept {len(included)}/{len(merged)} repositories")

        unique = self.suppress_near_duplicates(included, owner)
        logger.info(f"Pre-filter kept {len(unique)}/{len(included)} repositories")
        return unique

    async def fetch_owned(self, owner: str) -> list[CandidateRepository]:
        payloads = await self._paginate(
            lambda page: self.client.list_user_repos(owner, page=page, per_page=self.page_size, sort="updated"),
            label=f"users/{owner}",
            fatal_first_page=True,
        )
        return self._to_candidates(payloads)

    async def fetch_organization(self, org: str, owner: str) -> list[CandidateRepository]:
        payloads = await self._paginate(
            lambda page: self.client.list_org_repos(org, page=page, per_page=self.page_size),
            label=f"orgs/{org}",
        )

        contributed: list[CandidateRepository] = []
        for payload in payloads:
            repo_name = str(payload.get("name") or "")
            if not repo_name:
                continue

            contributors = await self.client.list_contributors(org, repo_name, per_page=self.page_size)
            if contributors.is_failed:
                logger.warning(
                    "Skipping organization repository, contributors unavailable",
                    extra=sanitize_log_extra(org=org, repository=repo_name, error=contributors.error),
                )
                continue

            logins = {
                str(entry.get("login") or "").lower()
                for entry in (contributors.data or [])
                if isinstance(entry, dict)
            }
            if owner.lower() not in logins:
                continue

            try:
                contributed.append(CandidateRepository.from_payload(payload, contributed=True, organization=org))
            except ValueError as exc:
                logger.warning(f"Skipping malformed repository payload in {org}: {exc}")

        return contributed

    async def fetch_commit_contributions(self, owner: str, known: set[str]) -> list[CandidateRepository]:
        if not self.client.has_token:
            logger.warning("GITHUB_TOKEN not configured, skipping commit search")
            return []

        full_names: list[str] = []
        for page in range(1, self.commit_search_pages + 1):
            result = await self.client.search_commits(owner, page=page, per_page=self.page_size)
            if result.is_failed:
                logger.warning(
                    "Commit search failed",
                    extra=sanitize_log_extra(author=owner, page=page, error=result.error),
                )
                break
            if result.is_empty:
                break

            for item in result.data:
                repository = item.get("repository") if isinstance(item, dict) else None
                full_name = str((repository or {}).get("full_name") or "").strip()
                if full_name and full_name.lower() not in known and full_name not in full_names:
                    full_names.append(full_name)

            if not result.has_next_page:
                break
            await self._page_delay()

        discovered: list[CandidateRepository] = []
        for full_name in full_names:
            repo_owner, _, repo_name = full_name.partition("/")
            result = await self.client.get_repo(repo_owner, repo_name)
            if not result.is_ok:
                logger.warning(
                    "Skipping discovered repository, details unavailable",
                    extra=sanitize_log_extra(repository=full_name, error=result.error),
                )
                continue
            try:
                discovered.append(CandidateRepository.from_payload(result.data, contributed=True))
            except ValueError as exc:
                logger.warning(f"Skipping malformed repository payload {full_name}: {exc}")

        return discovered

    async def get_repository(self, owner: str, name: str) -> CandidateRepository:
        """
        Fetch one repository by owner and name

        Raises:
            RepositorySourceError: The repository cannot be fetched
        """
        result = await self.client.get_repo(owner, name)
        if not result.is_ok:
            raise RepositorySourceError(
                f"Repository {owner}/{name} unavailable ({result.state.value}): {result.error or 'empty payload'}"
            )
        try:
            return CandidateRepository.from_payload(result.data)
        except ValueError as exc:
            raise RepositorySourceError(f"Repository {owner}/{name} payload malformed: {exc}") from exc

    async def get_repository_details(self, candidate: CandidateRepository) -> RepositoryDetails:
        """README description, languages by size, and documentation-only flag."""

        owner, _, name = candidate.full_name.partition("/")
        details = RepositoryDetails()

        readme = await self.client.get_readme(owner, name)
        if readme.is_ok:
            details.readme_description = extract_readme_description(readme.data)

        languages = await self.client.get_languages(owner, name)
        if languages.is_ok and isinstance(languages.data, dict):
            ranked = sorted(languages.data.items(), key=lambda item: item[1], reverse=True)
            details.languages = [str(language) for language, _ in ranked]

        contents = await self.client.list_root_contents(owner, name)
        details.is_documentation_only = is_documentation_only(contents)
        return details

    @staticmethod
    def merge(*groups: Sequence[CandidateRepository]) -> list[CandidateRepository]:
        """Concatenate candidate groups, first occurrence of an identity wins."""

        merged: dict[str, CandidateRepository] = {}
        for group in groups:
            for candidate in group:
                merged.setdefault(candidate.identity, candidate)
        return list(merged.values())

    def should_include(self, candidate: CandidateRepository, owner: str) -> bool:
        if self.portfolio_topic in (topic.lower() for topic in candidate.topics):
            return True
        if candidate.organization:
            return True
        if candidate.description and (not candidate.fork or candidate.contributed):
            return True
        if candidate.contributed:
            return True
        return candidate.is_owned_by(owner) and not candidate.fork

    def suppress_near_duplicates(
        self,
        candidates: Sequence[CandidateRepository],
        owner: str,
    ) -> list[CandidateRepository]:
        """Drop candidates whose name or description is near an already kept one."""

        ordered = sorted(
            candidates,
            key=lambda candidate: (
                not candidate.is_owned_by(owner),
                -candidate.stars,
                -parse_timestamp(candidate.updated_at).timestamp(),
            ),
        )

        kept: list[tuple[CandidateRepository, str, str]] = []
        for candidate in ordered:
            name_key = normalize_repo_name(candidate.name)
            description_key = normalize_description(candidate.description or "")

            match = None
            for other, other_name_key, other_description_key in kept:
                if string_similarity(name_key, other_name_key) > self.name_similarity_threshold:
                    match = other
                    break
                if (
                    string_similarity(description_key, other_description_key)
                    > self.description_similarity_threshold
                ):
                    match = other
                    break

            if match is not None:
                logger.debug(f"Pre-filter dropped {candidate.full_name} as similar to {match.full_name}")
                continue
            kept.append((candidate, name_key, description_key))

        return [candidate for candidate, _, _ in kept]

    async def _paginate(
        self,
        fetch_page: Callable[[int], Awaitable[FetchResult[Any]]],
        *,
        label: str,
        fatal_first_page: bool = False,
    ) -> list[dict[str, Any]]:
        payloads: list[dict[str, Any]] = []

        for page in range(1, self.max_pages + 1):
            result = await fetch_page(page)
            if result.state == FetchState.FAILED:
                if page == 1 and fatal_first_page:
                    raise RepositorySourceError(f"Unable to list {label}: {result.error}")
                logger.warning(
                    "Repository listing failed, stopping pagination",
                    extra=sanitize_log_extra(source=label, page=page, error=result.error),
                )
                break
            if result.state == FetchState.EMPTY or not isinstance(result.data, list):
                break

            payloads.extend(item for item in result.data if isinstance(item, dict))
            if len(result.data) < self.page_size:
                break
            await self._page_delay()

        return payloads

    async def _page_delay(self) -> None:
        if self.page_delay_seconds > 0:
            await asyncio.sleep(self.page_delay_seconds)

    @staticmethod
    def _to_candidates(payloads: Sequence[dict[str, Any]]) -> list[CandidateRepository]:
        candidates: list[CandidateRepository] = []
        for payload in payloads:
            try:
                candidates.append(CandidateRepository.from_payload(payload))
            except ValueError as exc:
                logger.warning(f"Skipping malformed repository payload: {exc}")
        return candidates
