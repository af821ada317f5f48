"""Mapping helpers from GitHub candidates to persisted project records."""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Sequence

from portfolio_sync.config.settings import settings
from portfolio_sync.models.candidate import CandidateRepository
from portfolio_sync.models.project import DEFAULT_IMAGE, ProjectRecord, parse_timestamp
from portfolio_sync.models.verdicts import EnhancedText

KEYWORD_TOPICS = ("ai", "web", "mobile", "api", "app", "game", "tool", "library", "framework")

_WORDS = re.compile(r"[a-z0-9]+")


def project_year(candidate: CandidateRepository) -> str:
    """Year of last push, else creation year, else the current year."""
    for raw in (candidate.pushed_at, candidate.created_at):
        value = parse_timestamp(raw)
        if value.year > 1:
            return str(value.year)
    return str(datetime.now(UTC).year)


def generate_topics(
    candidate: CandidateRepository,
    languages: Sequence[str] = (),
    *,
    description: str | None = None,
    max_topics: int | None = None,
) -> list[str]:
    """Repository topics, languages and description keywords, de-duplicated in order."""

    limit = max_topics if max_topics is not None else settings.MAX_PROJECT_TOPICS
    topics: list[str] = []
    seen: set[str] = set()

    # First spelling wins: "Python" and "python" are one topic
    def _add(value: Any) -> None:
        tag = str(value or "").strip()
        if tag and tag.lower() not in seen:
            seen.add(tag.lower())
            topics.append(tag)

    for topic in candidate.topics:
        _add(topic)
    _add(candidate.language)
    for language in list(languages)[:3]:
        _add(language)

    words = set(_WORDS.findall((description or candidate.description or "").lower()))
    for keyword in KEYWORD_TOPICS:
        if keyword in words:
            _add(keyword)

    return topics[:limit]


def localized_description(text: str, locales: Sequence[str] | None = None) -> dict[str, str]:
    codes = [code for code in (locales or settings.description_locales) if code] or ["en"]
    return {code: text for code in codes}


def build_project_record(
    candidate: CandidateRepository,
    enhanced: EnhancedText,
    *,
    languages: Sequence[str] = (),
    image: str | None = None,
    locales: Sequence[str] | None = None,
) -> ProjectRecord:
    """Map a classified, enhanced candidate into the persisted record shape."""

    return ProjectRecord(
        name=candidate.name,
        title=enhanced.title,
        description=localized_description(enhanced.description, locales),
        date=project_year(candidate),
        image=image or DEFAULT_IMAGE,
        topics=generate_topics(candidate, languages),
        html_url=candidate.html_url,
        homepage=candidate.homepage,
        stars=candidate.stars,
        language=candidate.language or "Unknown",
        updated=candidate.updated_at,
    )


def refresh_project_record(record: ProjectRecord, candidate: CandidateRepository) -> ProjectRecord:
    """Update activity fields of an existing record, keeping its enhanced text."""

    return replace(
        record,
        date=project_year(candidate),
        stars=candidate.stars,
        updated=candidate.updated_at or record.updated,
    )
