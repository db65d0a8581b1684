"""YouTube asset generation: dispatching image generation jobs to external providers."""

__version__ = "1.0.0"
