from __future__ import annotations

import argparse
import sys
from typing import Sequence

from compliance_watch.config import ConfigError, PipelineConfig, load_config
from compliance_watch.pipeline.lock import JobLockError
from compliance_watch.pipeline.run import RUN_FAILED, run_pipeline_openai
from compliance_watch.store.database import DatabaseManager
from compliance_watch.store.seed import SeedError, load_seed, seed_content
from compliance_watch.store.writer import StoreWriter
from compliance_watch.utils.logging import error, log


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="compliance-watch",
        description="Monitor federal regulations and state bills for landlord-tenant impact.",
    )
    p.add_argument("--config", type=str, default="configs/pipeline.yaml", help="YAML config path (missing file = defaults).")
    p.add_argument("--database-url", type=str, default=None, help="Overrides DATABASE_URL.")
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Fetch, classify and persist one monitoring pass.")
    run.add_argument("--jurisdiction", action="append", default=None, help="Limit to a jurisdiction code (repeatable; FED for federal).")
    run.add_argument("--lookback-days", type=int, default=None, help="Publication window for regulatory documents.")
    run.add_argument("--session-year", type=int, default=None, help="Legislative session year for state bills.")
    run.add_argument("--out", type=str, default=None, help="Directory for report.machine.json and report.human.txt.")
    run.add_argument("--timeout-s", type=float, default=None, help="Cancel the run after this many seconds.")
    run.add_argument("--no-llm", action="store_true", help="Classify with the keyword fallback only.")

    seed = sub.add_parser("seed", help="Load templates and compliance content from a YAML/JSON seed file.")
    seed.add_argument("path", type=str, help="Seed file path.")

    return p.parse_args(argv)


def _apply_overrides(cfg: PipelineConfig, args: argparse.Namespace) -> PipelineConfig:
    if args.database_url:
        cfg.database_url = args.database_url
    if args.command != "run":
        return cfg
    if args.jurisdiction:
        cfg.jurisdictions = [j.strip().upper() for j in args.jurisdiction if j.strip()]
    if args.lookback_days is not None:
        cfg.lookback_days = args.lookback_days
    if args.session_year is not None:
        cfg.session_year = args.session_year
    if args.out:
        cfg.output_dir = args.out
    if args.timeout_s is not None:
        cfg.run_timeout_s = args.timeout_s
    if args.no_llm:
        cfg.llm_enabled = False
    return cfg


def _seed(cfg: PipelineConfig, path: str) -> int:
    db = DatabaseManager(cfg.database_url)
    try:
        db.init_database()
        tallies = seed_content(StoreWriter(db), load_seed(path))
    finally:
        db.close()
    return 1 if any(t.errors for t in tallies.values()) else 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        cfg = _apply_overrides(load_config(args.config), args)
    except ConfigError as e:
        error(f"Invalid configuration: {e}")
        return 2

    if args.command == "seed":
        try:
            return _seed(cfg, args.path)
        except (OSError, SeedError) as e:
            error(f"Seeding failed: {e}")
            return 2

    try:
        result = run_pipeline_openai(cfg)
    except JobLockError as e:
        error(str(e))
        return 3
    if cfg.output_dir:
        log(f"Reports written to {cfg.output_dir}")
    return 1 if result["status"] == RUN_FAILED else 0


if __name__ == "__main__":
    sys.exit(main())
