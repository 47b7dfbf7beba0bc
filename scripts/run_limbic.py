#!/usr/bin/env python3
"""
Module: scripts/run_limbic.py
Summary: Feed lines of text through the limbic orchestrator and report facts, patterns and mood.
Inputs: OPENAI_API_KEY / LIMBIC_* / DATABASE_URL env (optionally from .env); CLI flags
Outputs: One line per processed input; optional sleep-cycle summary and telemetry spans
Data-Contracts: facts / patterns / emotional_states / context_history tables (via PgVectorStore)
Related: limbic/runtime/memory/*
Stability: beta; Security: RW on the configured database

Usage:
  python scripts/run_limbic.py --in-memory --offline notes.txt
  echo "The sun is shining" | python scripts/run_limbic.py --sleep
  python scripts/run_limbic.py --in-memory --offline --batch --trends notes.txt
  python scripts/run_limbic.py --dry-run

Environment:
  - OPENAI_API_KEY, OPENAI_BASE_URL (or LIMBIC_PROVIDER_*)
  - DATABASE_URL (or LIMBIC_STORE_DSN)
  - LIMBIC_MEMORY_* overrides for any memory tunable
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

from limbic.config import LimbicConfig, resolve_config
from limbic.logging import configure_logging
from limbic.runtime.memory import (
    CognitiveOrchestrator,
    ConsoleTelemetryClient,
    EmotionalQuadrant,
    InMemoryVectorStore,
    JsonlTelemetryClient,
    NoOpTelemetryClient,
    PgVectorStore,
    StoreError,
    TelemetryClient,
    VectorStore,
    build_provider,
)
from limbic.runtime.memory.models import SENSORY_INPUT_TYPES


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Process sensory text through the limbic memory engine")
    p.add_argument("input", nargs="?", default="-", help="Text file with one input per line ('-' for stdin)")
    p.add_argument(
        "--source",
        default="read-text",
        choices=SENSORY_INPUT_TYPES,
        help="Sensory input type (default: read-text)",
    )
    p.add_argument("--dry-run", action="store_true", help="Print the resolved configuration and exit")
    p.add_argument("--in-memory", action="store_true", help="Use the in-process vector store instead of Postgres")
    p.add_argument("--offline", action="store_true", help="Skip the LLM provider (neutral facts, zero embeddings)")
    p.add_argument("--no-schema", action="store_true", help="Skip ensure_schema (database already provisioned)")
    p.add_argument("--batch", action="store_true", help="Ingest all inputs as one batch (one aggregate mood update)")
    p.add_argument("--sleep", action="store_true", help="Force a sleep cycle after the last input")
    p.add_argument("--trends", action="store_true", help="Print hourly emotional trends for the input channel")
    p.add_argument("--telemetry", action="store_true", help="Print telemetry spans")
    p.add_argument("--telemetry-file", default=None, help="Append telemetry spans to this JSONL file")
    p.add_argument("--log-level", default="INFO")
    p.add_argument("--env-file", default=None, help="Load environment from this .env file first")
    return p.parse_args(argv)


def read_inputs(path: str) -> List[str]:
    lines: Iterable[str] = sys.stdin if path == "-" else Path(path).read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip()]


def format_mood(quadrant: EmotionalQuadrant) -> str:
    return ", ".join(f"{k}={v:+.2f}" for k, v in quadrant.as_dict().items())


def build_telemetry(args: argparse.Namespace) -> TelemetryClient:
    if args.telemetry_file:
        return JsonlTelemetryClient(Path(args.telemetry_file))
    if args.telemetry:
        return ConsoleTelemetryClient()
    return NoOpTelemetryClient()


async def build_store(args: argparse.Namespace, config: LimbicConfig) -> VectorStore:
    if args.in_memory:
        return InMemoryVectorStore()
    store = await PgVectorStore.connect(config.store, embedding_dimensions=config.provider.embedding_dimensions)
    if not args.no_schema:
        await store.ensure_schema()
    return store


async def run_single(orchestrator: CognitiveOrchestrator, text: str, source: str) -> None:
    try:
        result = await orchestrator.process_input(text, source=source)
    except StoreError as exc:
        print(f"[error] store failure, input skipped: {exc}")
        return
    print(
        f"fact> {result.fact.content!r} weight={result.fact.weight:.2f} "
        f"patterns={len(result.patterns)} related={len(result.related_facts)} "
        f"confidence={result.confidence:.2f} | {format_mood(result.emotional_state)}"
    )


async def run_batch(orchestrator: CognitiveOrchestrator, inputs: List[str], source: str) -> None:
    if not inputs:
        return
    try:
        batch = await orchestrator.process_batch(inputs, source=source)
    except StoreError as exc:
        print(f"[error] store failure, batch skipped: {exc}")
        return
    print(
        f"batch> facts={len(batch.facts)} patterns={len(batch.patterns)} "
        f"confidence={batch.confidence:.2f} | {format_mood(batch.emotional_state)}"
    )


async def run(args: argparse.Namespace, config: LimbicConfig) -> int:
    try:
        store = await build_store(args, config)
    except StoreError as exc:
        print(f"[error] failed to open vector store: {exc}")
        print("Hint: set DATABASE_URL, or pass --in-memory for an ephemeral run.")
        return 1

    orchestrator = CognitiveOrchestrator(
        store=store,
        provider=build_provider(config.provider, offline=args.offline),
        config=config,
        telemetry=build_telemetry(args),
    )
    async with orchestrator:
        inputs = read_inputs(args.input)
        if args.batch:
            await run_batch(orchestrator, inputs, args.source)
        else:
            for text in inputs:
                await run_single(orchestrator, text, args.source)

        if args.sleep:
            summary = await orchestrator.run_sleep_cycle()
            if summary is not None:
                print(f"[sleep] {summary.summary()}")

        if args.trends:
            for trend in await orchestrator.get_emotional_trends(context_type=args.source):
                print(
                    f"[trend] {trend.time_slice.isoformat()} intensity={trend.avg_intensity:.2f} "
                    f"dominant={trend.dominant_quadrant} samples={trend.samples}"
                )

        for pattern in await orchestrator.find_cross_context_patterns():
            print(f"[cross-context] {pattern.source_contexts} weight={pattern.weight:.2f} confidence={pattern.confidence:.2f}")
    return 0


def main() -> int:
    args = parse_args()
    load_dotenv(args.env_file)
    configure_logging(args.log_level)
    config = resolve_config()

    if args.dry_run:
        print("[plan] Limbic run with:")
        print(f"  store={'in-memory' if args.in_memory else config.store.dsn or '(no DATABASE_URL)'}")
        print(f"  provider={'offline' if args.offline else config.provider.base_url} model={config.provider.chat_model}")
        print(f"  api_key={'(set)' if config.provider.api_key else '(not set)'}")
        print(f"  memory={config.memory.model_dump()}")
        return 0

    return asyncio.run(run(args, config))


if __name__ == "__main__":
    raise SystemExit(main())
