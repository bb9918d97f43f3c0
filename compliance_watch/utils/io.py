from __future__ import annotations
import json
from pathlib import Path
from typing import Any

import yaml


def write_json(path: str | Path, obj: Any) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(obj, ensure_ascii=False, indent=2, default=str), encoding="utf-8")


def write_text(path: str | Path, text: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")


def read_structured(path: str | Path) -> Any:
    """Read a YAML or JSON file (the YAML loader accepts both)."""
    p = Path(path)
    with p.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)
