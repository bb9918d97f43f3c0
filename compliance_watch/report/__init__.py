"""Run report builders."""

from .report import build_human_report, build_machine_report

__all__ = ["build_human_report", "build_machine_report"]
