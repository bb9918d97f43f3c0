from __future__ import annotations
import sys
from datetime import datetime, timezone


def _ts() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds")


def log(msg: str) -> None:
    sys.stdout.write(f"[{_ts()}Z] {msg}\n")
    sys.stdout.flush()


def warn(msg: str) -> None:
    sys.stderr.write(f"[{_ts()}Z] WARN: {msg}\n")
    sys.stderr.flush()


def error(msg: str) -> None:
    sys.stderr.write(f"[{_ts()}Z] ERROR: {msg}\n")
    sys.stderr.flush()
