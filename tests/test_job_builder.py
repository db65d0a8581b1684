"""Tests for building jobs from visual prompts."""

import random

import pytest

from ytassets.dispatch.job_builder import MAX_RANDOM_SEED, SeedGenerator, VisualPrompt, build_jobs
from ytassets.dispatch.types import ImageFxRequest, ImageTool, JobStatus, WhiskRequest


def _prompts(n: int) -> list[VisualPrompt]:
    return [
        VisualPrompt(prompt=f"scene {i}", chunk_index=i, prompt_index=1, start_time="00:00:01,000")
        for i in range(1, n + 1)
    ]


class TestVisualPrompt:
    def test_from_dict(self):
        vp = VisualPrompt.from_dict(
            {
                "id": 17,
                "prompt": "a harbor at night",
                "chunk_index": "3",
                "prompt_index": 2,
                "start_time": "00:01:02,500",
                "end_time": "00:01:07,000",
            }
        )
        assert vp.record_id == "17"
        assert vp.chunk_index == 3
        assert vp.prompt_index == 2
        assert vp.end_time == "00:01:07,000"

    def test_from_dict_minimal(self):
        vp = VisualPrompt.from_dict({"prompt": "p"})
        assert vp.record_id == ""
        assert vp.chunk_index == 0

    def test_from_dict_requires_prompt(self):
        with pytest.raises(KeyError):
            VisualPrompt.from_dict({"chunk_index": 1})


class TestSeedGenerator:
    def test_static(self):
        seeds = SeedGenerator("static", static_seed=777)
        assert [seeds() for _ in range(3)] == [777, 777, 777]

    def test_random_in_range(self):
        seeds = SeedGenerator("random", rng=random.Random(0))
        values = [seeds() for _ in range(50)]
        assert all(1 <= v <= MAX_RANDOM_SEED for v in values)
        assert len(set(values)) > 1

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            SeedGenerator("sequential")


class TestBuildJobs:
    def test_whisk_jobs(self):
        jobs = build_jobs(_prompts(3), tool="whisk", seeds=SeedGenerator("static", 5))

        assert [j.id for j in jobs] == ["prompt_1", "prompt_2", "prompt_3"]
        assert all(isinstance(j.request, WhiskRequest) for j in jobs)
        assert all(j.status == JobStatus.PENDING for j in jobs)
        assert jobs[1].request.prompt == "scene 2"
        assert jobs[1].request.seed == 5
        assert jobs[1].target.chunk_index == 2

    def test_imagefx_jobs(self):
        jobs = build_jobs(_prompts(1), tool=ImageTool.IMAGEFX)
        assert isinstance(jobs[0].request, ImageFxRequest)
        assert jobs[0].provider == "imagefx"

    def test_request_options(self):
        jobs = build_jobs(_prompts(1), request_options={"image_model": "IMAGEN_4"})
        assert jobs[0].request.image_model == "IMAGEN_4"

    def test_unknown_tool(self):
        with pytest.raises(ValueError):
            build_jobs(_prompts(1), tool="midjourney")

    def test_empty(self):
        assert build_jobs([]) == []
