"""Output sinks — persist a completed job's images and update its target record."""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Protocol

from ytassets.dispatch.errors import OutputSinkError
from ytassets.dispatch.types import Job, ProviderResponse

logger = logging.getLogger(__name__)

SavedCallback = Callable[[Job, list[Path]], Awaitable[None]]


class OutputSink(Protocol):
    async def write(self, job: Job, response: ProviderResponse) -> None:
        """Persist the output; raise to mark the job failed."""
        ...


def _fs_safe(timestamp: str) -> str:
    return timestamp.replace(":", "_").replace(",", "_")


def image_filename(job: Job, seed: int) -> str:
    t = job.target
    return (
        f"chunk_{t.chunk_index}_prompt_{t.prompt_index}"
        f"_start_{_fs_safe(t.start_time)}_end_{_fs_safe(t.end_time)}_seed_{seed}.jpg"
    )


class ImageFileSink:
    """Decode base64 images into *output_dir*, then notify *on_saved*.

    ``on_saved(job, paths)`` is where the caller updates the job's target
    record (e.g. sets the chunk visual's image path).
    """

    def __init__(self, output_dir: str | Path, on_saved: SavedCallback | None = None):
        self.output_dir = Path(output_dir)
        self.on_saved = on_saved

    async def write(self, job: Job, response: ProviderResponse) -> None:
        if not response.images:
            raise OutputSinkError(f"{job.id}: provider returned no images")

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputSinkError(f"failed to create output directory: {e}") from e

        paths: list[Path] = []
        for img in response.images:
            filename = image_filename(job, img.seed or job.request.seed)
            try:
                data = base64.b64decode(img.encoded_image, validate=True)
            except (binascii.Error, ValueError) as e:
                raise OutputSinkError(f"failed to decode base64 image {filename}: {e}") from e

            path = self.output_dir / filename
            try:
                path.write_bytes(data)
            except OSError as e:
                raise OutputSinkError(f"failed to write image file {path}: {e}") from e

            logger.info("Image saved: %s", path)
            paths.append(path)

        if self.on_saved is not None:
            await self.on_saved(job, paths)
