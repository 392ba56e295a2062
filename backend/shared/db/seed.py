"""Load the riddle catalog from YAML into an empty riddles table."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import yaml

if TYPE_CHECKING:
    from shared.dal.session_repository import SessionRepository

logger = structlog.get_logger()


def get_default_catalog_path() -> Path:  # pragma: no cover
    """Return the file-relative default path to riddles.yaml."""
    backend_root = Path(__file__).parent.parent.parent
    return backend_root / "config" / "riddles.yaml"


@dataclass(frozen=True)
class RiddleSeed:
    question: str
    answer: str
    hint: str | None
    category_id: int | None
    difficulty: str | None


def load_riddle_catalog(path: Path) -> list[RiddleSeed]:
    """Read riddles grouped by category. A missing file yields an empty catalog."""
    if not path.exists():
        return []

    with path.open() as f:
        config = yaml.safe_load(f) or {}

    seeds: list[RiddleSeed] = []
    for category in config.get("categories", []):
        category_id = category.get("id")
        for riddle in category.get("riddles", []):
            seeds.append(
                RiddleSeed(
                    question=riddle["question"],
                    answer=str(riddle["answer"]),
                    hint=riddle.get("hint"),
                    category_id=category_id,
                    difficulty=riddle.get("difficulty", category.get("difficulty")),
                ),
            )
    return seeds


async def seed_riddles(repository: SessionRepository, path: Path) -> int:
    """Insert the catalog when the riddles table is empty. Return how many riddles were added."""
    if await repository.count_riddles() > 0:
        return 0
    seeds = load_riddle_catalog(path)
    for seed in seeds:
        await repository.create_riddle(
            question=seed.question,
            answer=seed.answer,
            hint=seed.hint,
            category_id=seed.category_id,
            difficulty=seed.difficulty,
        )
    logger.info("riddle catalog seeded", count=len(seeds), path=str(path))
    return len(seeds)
