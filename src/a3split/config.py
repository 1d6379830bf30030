"""
Configuration helpers for YAML-backed split options.
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any

try:
    import yaml
except ModuleNotFoundError:  # pragma: no cover - dependency availability
    yaml = None  # type: ignore[assignment]

from .layout import SplitConfig
from .utils import UserError, ensure_file_exists


DEFAULT_SPLIT: dict[str, Any] = {
    "orientation": "auto",
    "split_ratio": 0.5,
    "even_split_ratio": None,
    "dual_ratios": False,
    "numbering": False,
    "start_number": 1,
    "numbering_start_index": 0,
    "numbering_side": "both",
    "font_size": 10.0,
    "bottom_margin": 15.0,
    "font_file": None,
    "overwrite": False,
    "dry_run": False,
    "manifest": None,
}


def _require_yaml() -> Any:
    """Return yaml module or raise a user-facing install hint."""

    if yaml is None:
        raise UserError(
            "YAML support requires PyYAML. Install it with 'pip install PyYAML'."
        )
    return yaml


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file into a dictionary."""

    ensure_file_exists(path, "Config file")
    yaml_mod = _require_yaml()
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml_mod.safe_load(handle)
    except yaml_mod.YAMLError as exc:
        raise UserError(f"Failed to parse YAML config {path}: {exc}") from exc
    except OSError as exc:
        raise UserError(f"Failed to read config {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise UserError(f"Config {path} must contain a YAML mapping/object at top level.")
    return loaded


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries where overlay values win."""

    merged = deepcopy(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def validate_keys(cfg: dict[str, Any], allowed: set[str], ctx: str) -> None:
    """Validate dictionary keys and fail fast on unknown entries."""

    unknown = sorted(key for key in cfg.keys() if key not in allowed)
    if unknown:
        allowed_list = ", ".join(sorted(allowed))
        unknown_list = ", ".join(unknown)
        raise UserError(
            f"Unknown keys in {ctx}: {unknown_list}. Allowed keys: {allowed_list}."
        )


def extract_split_section(loaded: dict[str, Any]) -> dict[str, Any]:
    """Support either root config keys or a `split:` wrapper."""

    allowed = set(DEFAULT_SPLIT.keys())
    if "split" in loaded:
        section = loaded["split"]
        if not isinstance(section, dict):
            raise UserError("config.split must be a mapping/object.")
        validate_keys(section, allowed, "config.split")
        return section

    validate_keys(loaded, allowed, "config")
    return loaded


def require_bool(value: Any, key: str) -> bool:
    """Require a strict boolean value from config/CLI merge output."""

    if isinstance(value, bool):
        return value
    raise UserError(f"{key} must be true or false.")


def _require_number(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise UserError(f"{key} must be a number.")
    return float(value)


def _require_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise UserError(f"{key} must be an integer.")
    return value


def config_from_mapping(cfg: dict[str, Any]) -> SplitConfig:
    """Build a validated SplitConfig from an effective options mapping."""

    even_ratio = cfg.get("even_split_ratio")
    return SplitConfig(
        orientation=str(cfg["orientation"]),
        split_ratio=_require_number(cfg["split_ratio"], "config.split_ratio"),
        even_split_ratio=(
            None if even_ratio is None
            else _require_number(even_ratio, "config.even_split_ratio")
        ),
        dual_ratios=require_bool(cfg["dual_ratios"], "config.dual_ratios"),
        numbering=require_bool(cfg["numbering"], "config.numbering"),
        start_number=_require_int(cfg["start_number"], "config.start_number"),
        numbering_start_index=_require_int(
            cfg["numbering_start_index"], "config.numbering_start_index"
        ),
        numbering_side=str(cfg["numbering_side"]),
        font_size=_require_number(cfg["font_size"], "config.font_size"),
        bottom_margin=_require_number(cfg["bottom_margin"], "config.bottom_margin"),
    ).validate()


def dump_default_split_yaml() -> str:
    """Serialize wrapped split defaults as YAML."""

    yaml_mod = _require_yaml()
    return yaml_mod.safe_dump({"split": DEFAULT_SPLIT}, sort_keys=False).rstrip()
