"""Build generation jobs from visual prompts.

The request variant (Whisk or ImageFX) is chosen once here, from the
configured tool, and never re-inspected later in the pipeline.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any

from ytassets.dispatch.types import REQUEST_TYPES, ImageTool, Job, JobTarget

logger = logging.getLogger(__name__)

MAX_RANDOM_SEED = 999_999


@dataclass(frozen=True)
class VisualPrompt:
    """One image prompt for a script chunk, as produced by the visual planner."""

    prompt: str
    record_id: str = ""
    chunk_index: int = 0
    prompt_index: int = 0
    start_time: str = ""
    end_time: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VisualPrompt:
        return cls(
            prompt=data["prompt"],
            record_id=str(data.get("id") or data.get("record_id") or ""),
            chunk_index=int(data.get("chunk_index", 0)),
            prompt_index=int(data.get("prompt_index", 0)),
            start_time=data.get("start_time", ""),
            end_time=data.get("end_time", ""),
        )


class SeedGenerator:
    """Static or random seeds, per the configured seed mode."""

    def __init__(self, mode: str = "random", static_seed: int = 12345, rng: random.Random | None = None):
        if mode not in ("random", "static"):
            raise ValueError(f"unknown seed mode: {mode!r}")
        self.mode = mode
        self.static_seed = static_seed
        self.rng = rng or random.Random()

    def __call__(self) -> int:
        if self.mode == "static":
            return self.static_seed
        return self.rng.randint(1, MAX_RANDOM_SEED)


def build_jobs(
    prompts: list[VisualPrompt],
    tool: ImageTool | str = ImageTool.WHISK,
    seeds: SeedGenerator | None = None,
    request_options: dict[str, Any] | None = None,
) -> list[Job]:
    """One job per prompt, ids ``prompt_1``, ``prompt_2``, ...

    Args:
        prompts: Visual prompts in script order
        tool: Which generation tool to target
        seeds: Seed source (random by default)
        request_options: Extra request fields, e.g. {"aspect_ratio": ..., "image_model": ...}
    """
    tool = ImageTool(tool)
    seeds = seeds or SeedGenerator()
    request_cls = REQUEST_TYPES[tool]
    options = request_options or {}

    jobs: list[Job] = []
    for i, vp in enumerate(prompts, start=1):
        request = request_cls(prompt=vp.prompt, seed=seeds(), **options)
        target = JobTarget(
            record_id=vp.record_id,
            chunk_index=vp.chunk_index,
            prompt_index=vp.prompt_index,
            start_time=vp.start_time,
            end_time=vp.end_time,
        )
        jobs.append(Job(request=request, target=target, id=f"prompt_{i}"))

    logger.info("Built %d %s jobs", len(jobs), tool.value)
    return jobs
