"""
Run logging and the JSON run manifest.

Why this exists:
- Every split/preview run writes a manifest with inputs, outputs, per-page
  actions and the log timeline.
- Console logging goes through one place so verbosity works the same way in
  every command.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
from pathlib import Path
import sys
from typing import Any, Dict, List, TextIO

from .utils import ensure_dir


# Levels printed to the console for each verbosity mode.
CONSOLE_LEVELS = {
    "quiet": {"error"},
    "normal": {"info", "warning", "error"},
    "verbose": {"debug", "info", "warning", "error"},
}


def _iso_now() -> str:
    """Return an ISO-8601 timestamp in UTC."""

    return datetime.now(timezone.utc).isoformat()


@dataclass
class ManifestRecorder:
    """
    Collect logs and per-page actions, then write one manifest JSON file.
    """

    tool_name: str
    tool_version: str
    command: str
    options: Dict[str, Any]
    inputs: Dict[str, Any]
    outputs: Dict[str, Any]
    dry_run: bool
    verbosity: str = "normal"
    console_stream: TextIO = field(default_factory=lambda: sys.stderr)
    started_at: str = field(default_factory=_iso_now)
    logs: List[Dict[str, Any]] = field(default_factory=list)
    actions: List[Dict[str, Any]] = field(default_factory=list)

    def log(self, message: str, level: str = "info") -> None:
        """Record a log message and echo it to the console if verbosity allows."""

        self.logs.append({"timestamp": _iso_now(), "level": level, "message": message})

        if level not in CONSOLE_LEVELS.get(self.verbosity, CONSOLE_LEVELS["normal"]):
            return
        rendered = f"[{level}] {message}" if self.verbosity == "verbose" else message
        print(rendered, file=self.console_stream)

    def progress(self, percent: float) -> None:
        """Progress callback target for the splitter."""

        self.log(f"Progress: {percent:.1f}%", level="debug")

    def add_action(self, action: str, status: str, **details: Any) -> None:
        self.actions.append(
            {"timestamp": _iso_now(), "action": action, "status": status, **details}
        )

    def build_manifest(self, summary: Dict[str, Any]) -> Dict[str, Any]:
        """Everything recorded so far, plus the command's summary."""

        manifest: Dict[str, Any] = {
            "tool": self.tool_name,
            "version": self.tool_version,
            "command": self.command,
            "started_at": self.started_at,
            "ended_at": _iso_now(),
        }
        for key in ("options", "inputs", "outputs"):
            manifest[key] = getattr(self, key)
        manifest["summary"] = summary
        # Per-page outcomes (written, dry-run, skipped, error) by count.
        manifest["action_counts"] = dict(
            Counter(action.get("status", "unknown") for action in self.actions)
        )
        manifest["actions"] = self.actions
        manifest["logs"] = self.logs
        return manifest

    def write_manifest(self, path: Path, summary: Dict[str, Any]) -> None:
        if self.dry_run:
            self.log(f"[dry-run] Would write manifest to {path}")
            return
        ensure_dir(path.parent, dry_run=False)
        path.write_text(
            json.dumps(self.build_manifest(summary), indent=2, ensure_ascii=True),
            encoding="utf-8",
        )


def recorder_for(
    command_string: str,
    options: Dict[str, Any],
    inputs: Dict[str, Any],
    outputs: Dict[str, Any],
    dry_run: bool,
) -> ManifestRecorder:
    """Build a recorder using the version/verbosity carried in options."""

    return ManifestRecorder(
        tool_name="a3-split",
        tool_version=str(options.get("version", "0.0.0")),
        command=command_string,
        options=options,
        inputs=inputs,
        outputs=outputs,
        dry_run=dry_run,
        verbosity=str(options.get("verbosity", "normal")),
    )
