"""
Split A3 pages into A4 halves.

Why this module exists:
- split_pdf_bytes is the bytes-in/bytes-out conversion, usable without
  touching the filesystem.
- split_pdf wraps it with path checks, logging and the run manifest.
"""

from __future__ import annotations

import os
from pathlib import Path
import tempfile
from typing import Callable, Dict, List, Optional, Tuple

import fitz  # PyMuPDF

from .layout import PagePlan, Rect, SplitConfig, label_position, plan_pages
from .manifest import recorder_for
from .utils import (
    UserError,
    ensure_dir,
    ensure_file_exists,
    ensure_file_path,
    ensure_pdf_has_pages,
)


ProgressCallback = Callable[[float], None]

LABEL_COLOR = (0.2, 0.2, 0.2)
CUSTOM_FONT_NAME = "a3num"


def open_pdf_bytes(source: bytes) -> fitz.Document:
    """Parse PDF bytes, turning PyMuPDF failures into a UserError."""

    if not source:
        raise UserError("Input PDF is empty.")
    try:
        doc = fitz.open(stream=source, filetype="pdf")
    except Exception as exc:
        raise UserError(f"Input is not a readable PDF: {exc}") from exc
    if not doc.is_pdf:
        doc.close()
        raise UserError("Input is not a PDF document.")
    return doc


def page_sizes(doc: fitz.Document) -> List[Tuple[float, float]]:
    """Unrotated (width, height) of every page in points."""

    sizes: List[Tuple[float, float]] = []
    for page in doc:
        box = page.mediabox
        sizes.append((box.width, box.height))
    return sizes


def _load_label_font(font_file: Optional[Path]) -> Tuple[fitz.Font, str]:
    """
    Load the numbering font and the name to insert it under.

    Without a font file we use the built-in Helvetica, which needs no
    embedding.
    """

    if font_file is None:
        return fitz.Font("helv"), "helv"
    ensure_file_exists(font_file, "Font file")
    try:
        return fitz.Font(fontfile=str(font_file)), CUSTOM_FONT_NAME
    except Exception as exc:
        raise UserError(f"Failed to load font {font_file}: {exc}") from exc


def _to_cropbox(rect: Rect, mediabox: fitz.Rect) -> fitz.Rect:
    """
    Convert a bottom-left-origin window into a PyMuPDF crop box.

    PyMuPDF reads crop box x values in media box coordinates and y values
    downward from the media box top, so only x carries the media box origin.
    Values are clamped so float noise cannot push the box outside the media
    box.
    """

    width, height = mediabox.width, mediabox.height
    x0 = min(max(0.0, rect.x), width)
    x1 = min(max(0.0, rect.x1), width)
    top = min(max(0.0, height - rect.y1), height)
    bottom = min(max(0.0, height - rect.y), height)
    return fitz.Rect(mediabox.x0 + x0, top, mediabox.x0 + x1, bottom)


def _stamp_label(
    page: fitz.Page,
    label: int,
    config: SplitConfig,
    font: fitz.Font,
    fontname: str,
    font_file: Optional[Path],
) -> None:
    """Draw a page number centered near the bottom of a cropped page."""

    text = str(label)
    text_width = font.text_length(text, fontsize=config.font_size)
    # insert_text takes points in displayed coordinates: relative to the
    # crop box and with /Rotate applied, which is what page.rect describes.
    shown = page.rect
    x, y = label_position(
        Rect(0.0, 0.0, shown.width, shown.height), text_width, config.bottom_margin
    )
    page.insert_text(
        fitz.Point(shown.x0 + x, shown.y1 - y),
        text,
        fontsize=config.font_size,
        fontname=fontname,
        fontfile=str(font_file) if font_file is not None else None,
        color=LABEL_COLOR,
    )


def _append_half(
    out_doc: fitz.Document,
    source: fitz.Document,
    plan: PagePlan,
    window: Rect,
    label: Optional[int],
    config: SplitConfig,
    font: fitz.Font,
    fontname: str,
    font_file: Optional[Path],
) -> None:
    out_doc.insert_pdf(source, from_page=plan.index, to_page=plan.index)
    page = out_doc[out_doc.page_count - 1]
    page.set_cropbox(_to_cropbox(window, page.mediabox))
    if label is not None:
        _stamp_label(page, label, config, font, fontname, font_file)


def split_pdf_bytes(
    source: bytes,
    config: SplitConfig,
    on_progress: ProgressCallback | None = None,
    font_file: Optional[Path] = None,
) -> bytes:
    """
    Split every page of a PDF into two cropped copies and return the new PDF.

    The output always has twice as many pages as the input: for each source
    page, the first half followed by the second half. on_progress receives
    the percentage of source pages done after each page.
    """

    config.validate()
    try:
        with open_pdf_bytes(source) as doc:
            total_pages = doc.page_count
            ensure_pdf_has_pages(total_pages)
            font, fontname = _load_label_font(font_file)
            sizes = page_sizes(doc)
            plans = plan_pages(config, sizes)

            with fitz.open() as out_doc:
                for plan in plans:
                    for window, label in (
                        (plan.first, plan.first_label),
                        (plan.second, plan.second_label),
                    ):
                        _append_half(
                            out_doc, doc, plan, window, label,
                            config, font, fontname, font_file,
                        )
                    if on_progress is not None:
                        on_progress((plan.index + 1) / total_pages * 100)
                return out_doc.tobytes(garbage=3, deflate=True)
    except UserError:
        raise
    except Exception as exc:
        raise UserError(f"Failed to split PDF: {exc}") from exc


def _describe_plan(plan: PagePlan) -> str:
    axis = "vertical" if plan.vertical else "horizontal"
    labels = ", ".join(
        "-" if label is None else str(label)
        for label in (plan.first_label, plan.second_label)
    )
    return f"{axis} split at {plan.ratio:.3f}, labels [{labels}]"


def split_pdf(
    pdf_path: Path,
    out_pdf: Path,
    config: SplitConfig,
    overwrite: bool,
    dry_run: bool,
    manifest_path: Path,
    command_string: str,
    options: Dict[str, object],
    font_file: Optional[Path] = None,
) -> None:
    """
    Split an A3 PDF file into an A4 PDF file.

    The output is written to a temp file first and moved into place only once
    every page succeeded, so a failed run never leaves a partial PDF.
    """

    recorder = recorder_for(
        command_string,
        options,
        inputs={"pdf": str(pdf_path)},
        outputs={"out_pdf": str(out_pdf), "manifest": str(manifest_path)},
        dry_run=dry_run,
    )

    temp_path: Optional[Path] = None
    total_pages = 0
    output_pages = 0
    error_message: str | None = None
    summary: Dict[str, object] = {
        "page_count": 0,
        "output_page_count": 0,
        "output_pdf": str(out_pdf),
    }

    try:
        ensure_file_exists(pdf_path, "PDF")
        ensure_file_path(out_pdf, "Output PDF")
        config.validate()

        if out_pdf.resolve() == pdf_path.resolve():
            raise UserError("Output PDF is the same as input. Choose a different --out_pdf.")

        if out_pdf.exists() and not overwrite:
            recorder.log(f"Skipping because output exists: {out_pdf}")
            recorder.add_action(action="split", status="skipped", output=str(out_pdf))
            summary["status"] = "skipped"
            summary["reason"] = "output exists"
            return

        source = pdf_path.read_bytes()
        with open_pdf_bytes(source) as doc:
            total_pages = doc.page_count
            ensure_pdf_has_pages(total_pages)
            plans = plan_pages(config, page_sizes(doc))

        recorder.inputs["page_count"] = total_pages
        recorder.log(f"Splitting {total_pages} page(s) from {pdf_path}.")

        if dry_run:
            for plan in plans:
                recorder.log(f"[dry-run] Page {plan.index + 1}: {_describe_plan(plan)}")
                recorder.add_action(
                    action="split_page",
                    status="dry-run",
                    page=plan.index + 1,
                    vertical=plan.vertical,
                    ratio=plan.ratio,
                    labels=[plan.first_label, plan.second_label],
                )
            recorder.log(f"[dry-run] Would write {2 * total_pages} page(s) to {out_pdf}")
            return

        result = split_pdf_bytes(
            source,
            config,
            on_progress=recorder.progress,
            font_file=font_file,
        )

        ensure_dir(out_pdf.parent, dry_run=False)
        handle, temp_name = tempfile.mkstemp(
            prefix=f"{out_pdf.stem}_tmp_",
            suffix=out_pdf.suffix,
            dir=str(out_pdf.parent),
        )
        os.close(handle)
        temp_path = Path(temp_name)
        temp_path.write_bytes(result)
        temp_path.replace(out_pdf)
        temp_path = None
        output_pages = 2 * total_pages

        for plan in plans:
            recorder.add_action(
                action="split_page",
                status="written",
                page=plan.index + 1,
                vertical=plan.vertical,
                ratio=plan.ratio,
                labels=[plan.first_label, plan.second_label],
            )
        recorder.log(f"Wrote {output_pages} page(s) to {out_pdf}")
    except Exception as exc:  # pragma: no cover - includes validation and PyMuPDF errors
        if isinstance(exc, UserError):
            error_message = str(exc)
        else:
            error_message = f"Failed to split PDF {pdf_path}: {exc}"
        recorder.log(error_message, level="error")
        recorder.add_action(action="split", status="error", error=error_message)
        if temp_path is not None and temp_path.exists():
            temp_path.unlink(missing_ok=True)
        if isinstance(exc, UserError):
            raise
        raise UserError(error_message) from exc
    finally:
        summary["page_count"] = total_pages
        summary["output_page_count"] = output_pages
        if "status" not in summary:
            summary["status"] = "error" if error_message else "ok"
        if error_message is not None:
            summary["error"] = error_message
        recorder.write_manifest(manifest_path, summary)
