#!/usr/bin/env python3
"""
Configuration for the Stack Trace Blame tool

Defaults are read from TRACE_BLAME_* environment variables. A JSON file can be
layered on top with AnalyzerConfig.from_file(), and CLI options override both.
"""

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Tuple


DEFAULT_FRAME_MARKERS = ("at", "bei", "à", "en", "in", "em", "в", "場所")
DEFAULT_NOISE_NAMESPACES = ("System",)

HISTORY_MODES = ("blame", "log")
LOCATORS = ("heuristic", "syntax")


def _env_tuple(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass
class AnalyzerConfig:
    project_root: str = field(default_factory=lambda: os.getenv("TRACE_BLAME_PROJECT_ROOT", "."))
    source_extension: str = field(default_factory=lambda: os.getenv("TRACE_BLAME_SOURCE_EXTENSION", "cs"))
    github_pr_url_template: str = field(default_factory=lambda: os.getenv(
        "TRACE_BLAME_GITHUB_PR_URL", "https://github.com/your-org/your-repo/pull/{number}"))
    azure_pr_url_template: str = field(default_factory=lambda: os.getenv(
        "TRACE_BLAME_AZURE_PR_URL", "https://dev.azure.com/your-org/your-project/_git/your-repo/pullrequest/{number}"))
    frame_markers: Tuple[str, ...] = field(default_factory=lambda: _env_tuple(
        "TRACE_BLAME_FRAME_MARKERS", DEFAULT_FRAME_MARKERS))
    noise_namespaces: Tuple[str, ...] = field(default_factory=lambda: _env_tuple(
        "TRACE_BLAME_NOISE_NAMESPACES", DEFAULT_NOISE_NAMESPACES))
    command_timeout: float = field(default_factory=lambda: float(os.getenv("TRACE_BLAME_COMMAND_TIMEOUT", "30")))
    max_workers: int = field(default_factory=lambda: int(os.getenv("TRACE_BLAME_MAX_WORKERS", "1")))
    history_mode: str = field(default_factory=lambda: os.getenv("TRACE_BLAME_HISTORY_MODE", "blame"))
    locator: str = field(default_factory=lambda: os.getenv("TRACE_BLAME_LOCATOR", "heuristic"))

    def __post_init__(self):
        if self.history_mode not in HISTORY_MODES:
            raise ValueError(f"history_mode must be one of {HISTORY_MODES}, got {self.history_mode!r}")
        if self.locator not in LOCATORS:
            raise ValueError(f"locator must be one of {LOCATORS}, got {self.locator!r}")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.source_extension = self.source_extension.lstrip(".")
        self.frame_markers = tuple(self.frame_markers)
        self.noise_namespaces = tuple(self.noise_namespaces)

    @classmethod
    def from_file(cls, path: str) -> "AnalyzerConfig":
        """
        Load settings from a JSON file on top of the environment defaults.

        Unknown keys are rejected so typos do not silently fall back to defaults.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls().with_overrides(**data)

    def with_overrides(self, **overrides: Any) -> "AnalyzerConfig":
        """Return a copy with the non-None overrides applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        changes: Dict[str, Any] = {k: v for k, v in overrides.items() if v is not None}
        for key in ("frame_markers", "noise_namespaces"):
            if key in changes:
                changes[key] = tuple(changes[key])
        return replace(self, **changes)

    @property
    def project_path(self) -> Path:
        return Path(self.project_root)
