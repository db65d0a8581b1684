"""
run_image_batch.py — generate images for a list of visual prompts.

Runs the whole dispatch pipeline in one process:
  1. Load settings (.env / environment) and configure logging + Sentry
  2. Open the credential store (PostgreSQL if --db, otherwise in-memory)
  3. Seed API keys from the environment if the store is empty
  4. Build one job per prompt (tool + seed mode from settings)
  5. Dispatch with rate limiting, key rotation and retries
  6. Save images to OUTPUT_DIRECTORY and print the execution summary

Prompts file: a JSON list of objects with "prompt" and optionally
"id", "chunk_index", "prompt_index", "start_time", "end_time".

Usage:
    python run_image_batch.py prompts.json
    python run_image_batch.py prompts.json --db --concurrency 4
    python run_image_batch.py prompts.json --metrics-file metrics.prom
    python run_image_batch.py --list-keys --db
    python run_image_batch.py --rotate-secrets --db

Exit code is 1 when at least one job failed (content-policy skips are not failures).
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from ytassets.core.config import settings, validate_settings_for_production
from ytassets.core.logging import setup_logging
from ytassets.core.metrics import metrics_text
from ytassets.core.sentry import init_sentry
from ytassets.dispatch.credential_store import (
    InMemoryCredentialStore,
    SqlCredentialStore,
    format_credential_stats,
    seed_credentials_from_env,
)
from ytassets.dispatch.dispatcher import create_dispatcher
from ytassets.dispatch.job_builder import SeedGenerator, VisualPrompt, build_jobs
from ytassets.dispatch.output_sink import ImageFileSink

logger = logging.getLogger("image_batch")


def load_prompts(path: Path) -> list[VisualPrompt]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of prompt objects")
    return [VisualPrompt.from_dict(item) for item in data]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dispatch image generation jobs")
    parser.add_argument("prompts", nargs="?", type=Path, help="JSON file with visual prompts")
    parser.add_argument("--db", action="store_true", help="use the PostgreSQL credential store")
    parser.add_argument("--concurrency", type=int, default=None, help="override MAX_CONCURRENCY")
    parser.add_argument("--output", type=Path, default=None, help="override OUTPUT_DIRECTORY")
    parser.add_argument("--list-keys", action="store_true", help="print API key usage statistics and exit")
    parser.add_argument("--rotate-secrets", action="store_true", help="re-encrypt stored keys under the first FERNET_KEY")
    parser.add_argument("--metrics-file", type=Path, default=None, help="write Prometheus metrics here after the run")
    args = parser.parse_args(argv)
    if args.rotate_secrets and not args.db:
        parser.error("--rotate-secrets requires --db")
    if not (args.list_keys or args.rotate_secrets) and args.prompts is None:
        parser.error("a prompts file is required unless --list-keys or --rotate-secrets is given")
    return args


async def run(args: argparse.Namespace) -> int:
    engine = None
    if args.db:
        from ytassets.db.postgres import create_tables, make_session_factory

        session_factory, engine = make_session_factory()
        await create_tables(engine)
        store = SqlCredentialStore(session_factory)
    else:
        store = InMemoryCredentialStore()

    try:
        if args.list_keys:
            print(format_credential_stats(await store.list_all()))
            return 0

        if args.rotate_secrets:
            rotated = await store.rotate_secrets()
            print(f"Re-encrypted {rotated} API keys")
            return 0

        await seed_credentials_from_env(store)

        prompts = load_prompts(args.prompts)
        jobs = build_jobs(
            prompts,
            tool=settings.tool,
            seeds=SeedGenerator(settings.seed_mode, settings.static_seed),
        )

        sink = ImageFileSink(args.output or settings.output_directory)
        dispatcher = create_dispatcher(store, settings, sink=sink)

        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel.set)
            loop.add_signal_handler(signal.SIGTERM, cancel.set)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform")

        batch = await dispatcher.run_batch(jobs, concurrency=args.concurrency, cancel=cancel)

        print(json.dumps(batch.to_dict(), indent=2, ensure_ascii=False))
        print(format_credential_stats(await store.list_all()))

        if args.metrics_file is not None:
            args.metrics_file.write_bytes(metrics_text())

        if batch.error is not None:
            logger.error("%s", batch.error)
            return 1
        return 0
    finally:
        if engine is not None:
            await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging()
    validate_settings_for_production()
    init_sentry()
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
