"""Deduplication service to keep one record per project"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from portfolio_sync.config.settings import settings
from portfolio_sync.crawlers.github.client import sanitize_log_extra
from portfolio_sync.models.project import ProjectRecord
from portfolio_sync.models.verdicts import SOURCE_HEURISTIC, SOURCE_LLM, DuplicateVerdict
from portfolio_sync.services.llm import LLMClient
from portfolio_sync.services.similarity import jaccard_similarity

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You compare two portfolio projects and decide whether they are the same project. "
    "Respond with JSON only."
)


@dataclass
class ResolutionResult:
    unique: List[ProjectRecord] = field(default_factory=list)
    removed: List[ProjectRecord] = field(default_factory=list)


class DuplicateResolver:
    """Service to detect duplicate projects and pick which one survives"""

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        *,
        confidence_threshold: Optional[float] = None,
        delay_seconds: Optional[float] = None,
    ):
        self.llm = llm
        self.confidence_threshold = (
            confidence_threshold if confidence_threshold is not None else settings.DUPLICATE_CONFIDENCE_THRESHOLD
        )
        self.delay_seconds = delay_seconds if delay_seconds is not None else settings.DUPLICATE_CHECK_DELAY_SECONDS

    @property
    def uses_llm(self) -> bool:
        return self.llm is not None and self.llm.is_available

    async def check(self, candidate: ProjectRecord, existing: ProjectRecord) -> DuplicateVerdict:
        """
        Decide whether two records describe the same project

        Args:
            candidate: Record being added
            existing: Record already accepted

        Returns:
            DuplicateVerdict; duplicate only above the confidence threshold
        """
        if candidate.name == existing.name:
            return DuplicateVerdict(True, 1.0, "Same repository name", SOURCE_HEURISTIC)

        if self.uses_llm:
            try:
                payload = await self.llm.complete_json(
                    system=SYSTEM_PROMPT,
                    prompt=self._build_prompt(candidate, existing),
                    temperature=0.1,
                    max_tokens=150,
                )
            except Exception as exc:
                logger.warning(
                    "Duplicate LLM check failed, using title overlap",
                    extra=sanitize_log_extra(candidate=candidate.name, existing=existing.name, error=str(exc)),
                )
                payload = None

            verdict = self._parse_verdict(payload)
            if verdict is not None:
                return verdict

        return self.heuristic(candidate, existing)

    def heuristic(self, candidate: ProjectRecord, existing: ProjectRecord) -> DuplicateVerdict:
        similarity = jaccard_similarity(candidate.title, existing.title)
        if similarity > self.confidence_threshold:
            return DuplicateVerdict(True, similarity, "Titles overlap", SOURCE_HEURISTIC)
        return DuplicateVerdict(False, similarity, "Titles differ", SOURCE_HEURISTIC)

    @staticmethod
    def pick_winner(existing: ProjectRecord, candidate: ProjectRecord, owner: str) -> ProjectRecord:
        """
        Choose which of two duplicates survives

        Later `updated` wins, then more stars, then the owner's own repository.
        A full tie keeps the already accepted record.
        """
        existing_updated = existing.updated_at
        candidate_updated = candidate.updated_at
        if candidate_updated != existing_updated:
            return candidate if candidate_updated > existing_updated else existing

        if candidate.stars != existing.stars:
            return candidate if candidate.stars > existing.stars else existing

        if candidate.is_owned_by(owner) and not existing.is_owned_by(owner):
            return candidate

        return existing

    async def resolve(self, records: List[ProjectRecord], owner: str) -> ResolutionResult:
        """
        Collapse duplicates pairwise against the accepted set

        Args:
            records: Enhanced records in processing order
            owner: Portfolio owner's GitHub username

        Returns:
            ResolutionResult with surviving and dropped records
        """
        result = ResolutionResult()

        for record in records:
            duplicate_index = None
            for index, kept in enumerate(result.unique):
                verdict = await self.check(record, kept)
                if verdict.source == SOURCE_LLM and self.delay_seconds > 0:
                    await asyncio.sleep(self.delay_seconds)
                if verdict.is_duplicate:
                    duplicate_index = index
                    logger.info(
                        f"Duplicate found ({verdict.confidence:.2f}): '{record.title}' ~ '{kept.title}'",
                        extra=sanitize_log_extra(reason=verdict.reason, source=verdict.source),
                    )
                    break

            if duplicate_index is None:
                result.unique.append(record)
                continue

            kept = result.unique[duplicate_index]
            winner = self.pick_winner(kept, record, owner)
            if winner is record:
                result.unique[duplicate_index] = record
                result.removed.append(kept)
            else:
                result.removed.append(record)

        logger.info(f"Resolved {len(records)} records -> {len(result.unique)} unique")
        return result

    def _parse_verdict(self, payload: Optional[dict]) -> Optional[DuplicateVerdict]:
        if not payload:
            return None
        flag = payload.get("isDuplicate")
        if not isinstance(flag, bool):
            return None

        raw_confidence = payload.get("confidence", 0.0)
        try:
            confidence = float(raw_confidence)
        except (TypeError, ValueError):
            confidence = 0.0
        confidence = min(max(confidence, 0.0), 1.0)

        reason = str(payload.get("reason") or "")
        return DuplicateVerdict(flag and confidence > self.confidence_threshold, confidence, reason, SOURCE_LLM)

    @staticmethod
    def _build_prompt(candidate: ProjectRecord, existing: ProjectRecord) -> str:
        return f"""Are these two portfolio entries the same project?

Project 1:
- Repository: {existing.name}
- Title: {existing.title}
- Description: {existing.primary_description}
- Topics: {", ".join(existing.topics) or "none"}
- Language: {existing.language}
- URL: {existing.html_url}

Project 2:
- Repository: {candidate.name}
- Title: {candidate.title}
- Description: {candidate.primary_description}
- Topics: {", ".join(candidate.topics) or "none"}
- Language: {candidate.language}
- URL: {candidate.html_url}

Consider: similar titles, overlapping functionality, the same tech stack,
the same event or hackathon naming, and whether one is a fork or mirror.
Different projects that merely share a language are NOT duplicates.

Respond in JSON format:
{{
  "isDuplicate": true or false,
  "confidence": 0.0 to 1.0,
  "reason": "brief explanation"
}}"""
