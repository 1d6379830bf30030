"""
Shared utility helpers.

This module keeps the "sharp edges" (validation and path checks) in one place
so the rest of the code can stay focused on PDF/image work.
"""

from __future__ import annotations

from pathlib import Path


class UserError(Exception):
    """Raised for user-facing problems that should show a clear message."""


def normalize_path(value: str) -> Path:
    """
    Convert user input to a Path.

    We do not resolve() here because we want to preserve relative paths in
    manifests and error messages.
    """

    return Path(value).expanduser()


def ensure_file_exists(path: Path, label: str) -> Path:
    """Validate that a path exists and is a file."""

    if not path.exists():
        raise UserError(f"{label} not found: {path}")
    if not path.is_file():
        raise UserError(f"{label} is not a file: {path}")
    return path


def ensure_dir(path: Path, dry_run: bool) -> None:
    """Create a directory if needed, unless this is a dry-run."""

    if dry_run:
        return
    path.mkdir(parents=True, exist_ok=True)


def ensure_file_path(path: Path, label: str) -> None:
    """Ensure a path is a file path (not an existing directory)."""

    if path.exists() and path.is_dir():
        raise UserError(f"{label} is a directory, not a file: {path}")


def ensure_pdf_has_pages(total_pages: int) -> None:
    """Fail early if a PDF has no pages."""

    if total_pages <= 0:
        raise UserError("PDF has no pages.")


def validate_positive_int(value: int, label: str) -> int:
    """Common validation for options like --dpi or --start_number."""

    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise UserError(f"{label} must be a positive integer.")
    return value


def validate_fraction(value: float, label: str) -> float:
    """
    Ensure a split ratio lies strictly between 0 and 1.

    A ratio of exactly 0 or 1 would produce an empty half, which PDF viewers
    reject as a crop box.
    """

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise UserError(f"{label} must be a number between 0 and 1.")
    if not 0 < value < 1:
        raise UserError(f"{label} must be in the range (0, 1).")
    return float(value)


def validate_choice(value: str, choices: tuple[str, ...], label: str) -> str:
    """Reject values outside a fixed set of choices."""

    if value not in choices:
        raise UserError(f"{label} must be one of: {', '.join(choices)}.")
    return value


def default_output_pdf(pdf_path: Path) -> Path:
    """Output name used when --out_pdf is not given."""

    return pdf_path.with_name(f"split_with_numbers_{pdf_path.name}")
