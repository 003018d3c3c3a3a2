#!/usr/bin/env python3
"""
Tuition research: grounded extraction with self-verification.

Finds the tuition of record for graduate programs on official school pages,
cites the sources, and verifies the result (arithmetic, source, completeness,
plausibility checks plus an AI critique). Every record is stored as a new
version under the data directory.

Usage:
    python research.py --school "Example University" --program "Part-Time MBA"
    python research.py --pairs programs.txt --workers 2 --project fall-2025
    python research.py --pairs programs.txt --json > results.json

Pairs file format: School | Program [| Project] (lines starting with # are ignored)
"""

import argparse
import json
import signal
import sys
import threading
from pathlib import Path

from dotenv import load_dotenv

from tuition_research.agents.gemini_search import GeminiSearchClient
from tuition_research.config import PipelineConfig, get_records_dir
from tuition_research.exceptions import InvalidRequestError
from tuition_research.pipeline import BatchItem, TuitionResearchPipeline
from tuition_research.storage import FileRecordStore
from tuition_research.utils.logger import PipelineLogger
from tuition_research.utils.pair_loader import load_program_pairs

load_dotenv()


def print_record(record, index=None, total=None):
    """One-line summary plus verification details for a record."""
    prefix = f"[{index}/{total}] " if index is not None else ""
    status = record.status.value
    symbol = {"Success": "✓", "Not Found": "⊘", "Failed": "✗"}.get(status, "?")
    facts = record.facts
    print(f"{prefix}{symbol} {record.school[:40]} / {record.program[:30]}: {status}")
    if facts.tuition_amount:
        period = f" ({facts.tuition_period})" if facts.tuition_period else ""
        print(f"    Tuition: {facts.tuition_amount}{period}  Year: {facts.academic_year or 'n/a'}")
    if facts.calculated_total_cost:
        print(f"    Calculated: {facts.cost_per_credit} x {facts.total_credits} credits = {facts.calculated_total_cost}")
    if record.variant_used:
        print(f"    Found as: {record.variant_used}")
    print(f"    Verification: {record.verification_status.value} ({record.confidence.value} confidence)")
    for check in record.verdict.checks:
        print(f"      - {check.name}: {check.outcome.value} - {check.explanation[:100]}")
    print(f"    Source: {record.source_url}")
    for note in record.audit_notes:
        print(f"    Note: {note}")


def main():
    parser = argparse.ArgumentParser(description="Research graduate program tuition from official sources")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--pairs", type=str, help="Path to pairs file (format: School | Program [| Project])")
    group.add_argument("--school", type=str, help="Single school name (use with --program)")
    parser.add_argument("--program", type=str, help="Program name for --school")
    parser.add_argument("--project", type=str, default=None, help="Project id records are stored under")
    parser.add_argument("--workers", type=int, default=None, help="Concurrent pipeline runs (default: 1)")
    parser.add_argument("--delay", type=float, default=None, help="Seconds between batch item starts (default: 1.0)")
    parser.add_argument("--no-critique", action="store_true", help="Skip the AI critique during verification")
    parser.add_argument("--output-dir", type=str, default=None, help="Record store directory (default: data dir)")
    parser.add_argument("--log-level", type=str, default="INFO", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-file", type=str, default=None, help="Also log to logs/<file>")
    parser.add_argument("--json", action="store_true", help="Print records as JSON instead of a summary")

    args = parser.parse_args()

    if args.school and not args.program:
        parser.error("--program is required with --school")

    logger = PipelineLogger("tuition_research", log_level=args.log_level, log_file=args.log_file)

    overrides = {}
    if args.workers is not None:
        overrides["max_batch_concurrency"] = args.workers
    if args.delay is not None:
        overrides["inter_item_delay_seconds"] = args.delay
    if args.no_critique:
        overrides["enable_ai_critique"] = False
    try:
        config = PipelineConfig.from_env(**overrides)
    except ValueError as e:
        print(f"Error: Invalid configuration: {e}")
        sys.exit(1)

    if args.pairs:
        if not Path(args.pairs).exists():
            print(f"Error: Pairs file not found: {args.pairs}")
            sys.exit(1)
        entries = load_program_pairs(args.pairs, default_project=args.project, logger=logger)
        if not entries:
            print(f"Error: No valid school/program pairs found in {args.pairs}")
            sys.exit(1)
        items = [BatchItem(e.school, e.program, e.project_id) for e in entries]
    else:
        items = [BatchItem(args.school, args.program, args.project)]

    try:
        search_client = GeminiSearchClient(model=config.search_model, max_output_tokens=config.max_output_tokens)
    except ValueError as e:
        logger.error(str(e))
        print(f"Error: {e}")
        sys.exit(1)

    store_root = Path(args.output_dir) if args.output_dir else get_records_dir()
    store = FileRecordStore(store_root)
    pipeline = TuitionResearchPipeline(search_client, config=config, store=store)

    if not args.json:
        print("=" * 80)
        print(f"TUITION RESEARCH: {len(items)} PROGRAM(S)")
        print(f"  Workers: {config.max_batch_concurrency}  Delay: {config.inter_item_delay_seconds}s")
        print(f"  AI critique: {'on' if config.enable_ai_critique else 'off'}")
        print(f"  Records: {store_root}")
        print("=" * 80)

    # Single pair: run directly so validation errors surface as such
    if len(items) == 1 and not args.pairs:
        item = items[0]
        try:
            with logger.time_item(item.school, item.program):
                record = pipeline.run(item.school, item.program, item.project_id)
        except InvalidRequestError as e:
            print(f"Error: {e}")
            sys.exit(1)
        if args.json:
            print(json.dumps(record.to_dict(), indent=2))
        else:
            print_record(record)
        sys.exit(1 if record.status.value == "Failed" else 0)

    # Ctrl-C stops dispatching; running items finish and are kept
    cancel_event = threading.Event()

    def handle_interrupt(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        print("\nCancelling: waiting for running items to finish (Ctrl-C again to abort)")
        cancel_event.set()

    signal.signal(signal.SIGINT, handle_interrupt)

    logger.log_batch_start(len(items), config.max_batch_concurrency)
    batch = pipeline.run_batch(items, cancel_event=cancel_event)
    logger.log_batch_complete(
        succeeded=batch.succeeded,
        not_found=batch.not_found,
        failed=batch.failed,
        cancelled=batch.cancelled_count,
        duration_seconds=batch.duration_seconds,
        total_cost_usd=batch.total_cost_usd,
    )

    if args.json:
        print(json.dumps([r.to_dict() for r in batch.records], indent=2))
    else:
        for index, result in enumerate(batch.results, 1):
            if result.record is not None:
                print_record(result.record, index, len(batch.results))
            elif result.cancelled:
                print(f"[{index}/{len(batch.results)}] - {result.item.school[:40]} / {result.item.program[:30]}: cancelled")
            else:
                print(f"[{index}/{len(batch.results)}] ✗ {result.item.school[:40]} / {result.item.program[:30]}: {result.error}")

        print("\n" + "=" * 80)
        print("RESEARCH SUMMARY")
        print("=" * 80)
        print(f"  ✓ Success: {batch.succeeded}")
        print(f"  ⊘ Not found: {batch.not_found}")
        print(f"  ✗ Failed: {batch.failed}")
        if batch.cancelled_count:
            print(f"  - Cancelled: {batch.cancelled_count}")
        print(f"  Cost: ${batch.total_cost_usd:.4f}  Duration: {batch.duration_seconds:.1f}s")
        log_summary = logger.get_error_summary()
        if log_summary["total_warnings"] or log_summary["total_errors"]:
            print(f"  Log: {log_summary['total_warnings']} warning(s), {log_summary['total_errors']} error(s)")

    if batch.failed > 0:
        logger.error(f"Research incomplete: {batch.failed} item(s) failed")
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
