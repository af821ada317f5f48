"""Project card image selection"""

import logging
from pathlib import Path
from typing import Optional

from portfolio_sync.config.settings import settings
from portfolio_sync.crawlers.github.client import sanitize_log_extra
from portfolio_sync.models.project import ProjectRecord
from portfolio_sync.services.llm import LLMClient

logger = logging.getLogger(__name__)

REUSABLE_EXTENSIONS = (".webp", ".png")


class ImageSelector:
    """Pick an existing card image, optionally generate one, else the default."""

    def __init__(
        self,
        *,
        site_root: Optional[Path] = None,
        images_dir: Optional[str] = None,
        default_image: Optional[str] = None,
        generate: Optional[bool] = None,
        llm: Optional[LLMClient] = None,
    ):
        self.site_root = Path(site_root if site_root is not None else settings.SITE_ROOT)
        self.images_dir = (images_dir or settings.PROJECT_IMAGES_DIR).strip("/")
        self.default_image = default_image or settings.DEFAULT_PROJECT_IMAGE
        self.generate = settings.GENERATE_IMAGES if generate is None else generate
        self.llm = llm

    def existing_image(self, name: str) -> Optional[str]:
        for extension in REUSABLE_EXTENSIONS:
            relative = f"{self.images_dir}/{name}{extension}"
            if (self.site_root / relative).is_file():
                return relative
        return None

    async def select(self, record: ProjectRecord) -> str:
        existing = self.existing_image(record.name)
        if existing:
            return existing

        if not self.generate or self.llm is None or not self.llm.can_generate_images:
            return self.default_image

        try:
            image = await self.llm.generate_image(self._build_prompt(record))
        except Exception as exc:
            logger.warning(
                "Image generation failed, using default image",
                extra=sanitize_log_extra(repository=record.name, error=str(exc)),
            )
            return self.default_image

        if not image:
            return self.default_image

        # The images endpoint returns PNG bytes
        relative = f"{self.images_dir}/{record.name}.png"
        target = self.site_root / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(image)
        except OSError as exc:
            logger.warning(
                "Failed to save generated image",
                extra=sanitize_log_extra(repository=record.name, path=str(target), error=str(exc)),
            )
            return self.default_image

        logger.info(f"Generated image for {record.name}")
        return relative

    @staticmethod
    def _build_prompt(record: ProjectRecord) -> str:
        topics = ", ".join(record.topics[:4]) or "software"
        return (
            f"A clean, modern illustration representing a software project called '{record.title}'. "
            f"{record.primary_description} Themes: {topics}. "
            "Minimal flat style, no text, suitable as a portfolio card thumbnail."
        )
