from __future__ import annotations

from pathlib import Path

import pytest

from portfolio_sync.models.project import ProjectRecord
from portfolio_sync.services.images import ImageSelector

DEFAULT = "images/projects/default.webp"


class FakeImageLLM:
    can_generate_images = True

    def __init__(self, image: bytes | None = b"\x89PNG fake", error: Exception | None = None) -> None:
        self.image = image
        self.error = error
        self.prompts: list[str] = []

    async def generate_image(self, prompt: str) -> bytes | None:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.image


def project(name: str = "ray-tracer") -> ProjectRecord:
    return ProjectRecord(
        name=name,
        title="Ray Tracer",
        description={"en": "Renders scenes with rays"},
        date="2024",
        topics=["rust", "graphics"],
    )


def selector(tmp_path: Path, **options) -> ImageSelector:
    return ImageSelector(site_root=tmp_path, images_dir="images/projects", default_image=DEFAULT, **options)


@pytest.mark.asyncio
async def test_existing_image_is_reused(tmp_path: Path) -> None:
    image = tmp_path / "images" / "projects" / "ray-tracer.webp"
    image.parent.mkdir(parents=True)
    image.write_bytes(b"webp")
    llm = FakeImageLLM()

    chosen = await selector(tmp_path, generate=True, llm=llm).select(project())

    assert chosen == "images/projects/ray-tracer.webp"
    assert llm.prompts == []


@pytest.mark.asyncio
async def test_default_image_when_generation_disabled(tmp_path: Path) -> None:
    chosen = await selector(tmp_path, generate=False, llm=FakeImageLLM()).select(project())

    assert chosen == DEFAULT


@pytest.mark.asyncio
async def test_generated_image_is_saved_under_site_root(tmp_path: Path) -> None:
    llm = FakeImageLLM()

    chosen = await selector(tmp_path, generate=True, llm=llm).select(project())

    assert chosen == "images/projects/ray-tracer.png"
    assert (tmp_path / chosen).read_bytes() == b"\x89PNG fake"
    assert "Ray Tracer" in llm.prompts[0]


@pytest.mark.asyncio
async def test_generation_failure_falls_back_to_default(tmp_path: Path) -> None:
    failing = FakeImageLLM(error=RuntimeError("quota exceeded"))
    empty = FakeImageLLM(image=None)

    assert await selector(tmp_path, generate=True, llm=failing).select(project()) == DEFAULT
    assert await selector(tmp_path, generate=True, llm=empty).select(project()) == DEFAULT
