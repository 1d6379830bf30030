"""
Preview a split before converting.

Why this module exists:
- Renders one source page with PyMuPDF and draws the planned cut and page
  labels on top with Pillow, using the same layout formulas as the splitter.
- PreviewSession lets an interactive caller jump between pages: a newer
  request cancels the one still rendering, and stale results are dropped.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
import threading
from typing import Callable, Dict, List, Optional, Tuple

import fitz  # PyMuPDF
from PIL import Image, ImageDraw

from .layout import (
    PreviewInfo,
    Rect,
    SplitConfig,
    clamp_page_index,
    preview_info,
    split_rects,
)
from .manifest import recorder_for
from .split import open_pdf_bytes
from .utils import (
    UserError,
    ensure_dir,
    ensure_file_exists,
    ensure_file_path,
    ensure_pdf_has_pages,
    validate_positive_int,
)


PixelBox = Tuple[int, int, int, int]

# Overlay colors: regular ratio vs. the alternate ratio on even pages.
PRIMARY_COLOR = (79, 70, 229)
ALTERNATE_COLOR = (16, 185, 129)
LABEL_FILL = (255, 255, 255)
LABEL_TEXT = (51, 51, 51)


class RenderCancelled(Exception):
    """Raised inside a render when a newer request superseded it."""


class CancelToken:
    """Cooperative cancellation flag shared between a request and its render."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RenderCancelled()


@dataclass
class PreviewRender:
    image: Image.Image
    info: PreviewInfo


Renderer = Callable[
    [fitz.Document, int, SplitConfig, int, Optional[CancelToken]],
    PreviewRender,
]


def _to_pixels(rect: Rect, page_height: float, matrix: fitz.Matrix) -> PixelBox:
    """Map a bottom-left-origin PDF rect onto top-left-origin pixels."""

    box = fitz.Rect(rect.x, page_height - rect.y1, rect.x1, page_height - rect.y) * matrix
    return (round(box.x0), round(box.y0), round(box.x1), round(box.y1))


def _cut_line(
    info: PreviewInfo,
    first: Rect,
    page_width: float,
    page_height: float,
    matrix: fitz.Matrix,
) -> List[Tuple[int, int]]:
    if info.vertical:
        ends = (fitz.Point(first.x1, 0), fitz.Point(first.x1, page_height))
    else:
        cut = page_height - first.y
        ends = (fitz.Point(0, cut), fitz.Point(page_width, cut))
    return [(round(point.x), round(point.y)) for point in (end * matrix for end in ends)]


def _draw_tag(draw: ImageDraw.ImageDraw, xy: Tuple[int, int], text: str, color) -> None:
    left, top, right, bottom = draw.textbbox(xy, text)
    draw.rectangle((left - 3, top - 2, right + 3, bottom + 2), fill=color)
    draw.text(xy, text, fill=LABEL_FILL)


def _draw_label(
    draw: ImageDraw.ImageDraw, box: PixelBox, text: str, color, margin: int
) -> None:
    """Center a predicted page number margin pixels above the bottom of a half."""

    left, top, right, bottom = draw.textbbox((0, 0), text)
    width, height = right - left, bottom - top
    x = (box[0] + box[2]) // 2 - width // 2
    y = box[3] - margin - height
    draw.rectangle((x - 4, y - 3, x + width + 4, y + height + 3), fill=LABEL_FILL, outline=color)
    draw.text((x, y), text, fill=LABEL_TEXT)


def draw_split_overlay(
    image: Image.Image,
    info: PreviewInfo,
    page_width: float,
    page_height: float,
    use_alternate_color: bool = False,
    rotation_matrix: Optional[fitz.Matrix] = None,
    bottom_margin: float = SplitConfig.bottom_margin,
) -> Image.Image:
    """
    Return a copy of image with the cut line, halves and labels drawn on.

    page_width/page_height are the unrotated page size in points. When the
    image shows the page rotated, rotation_matrix is the page's
    unrotated-to-displayed matrix; halves are mapped through it and labels
    sit at the displayed bottom of each half, bottom_margin points up.
    """

    overlay = image.convert("RGB")
    draw = ImageDraw.Draw(overlay)
    matrix = fitz.Matrix(rotation_matrix) if rotation_matrix is not None else fitz.Matrix(1, 1)
    shown = fitz.Rect(0, 0, page_width, page_height) * matrix
    scale_x = overlay.width / shown.width
    scale_y = overlay.height / shown.height
    matrix = matrix * fitz.Matrix(scale_x, scale_y)
    color = ALTERNATE_COLOR if use_alternate_color else PRIMARY_COLOR

    first, second = split_rects(page_width, page_height, info.ratio, info.vertical)
    first_box = _to_pixels(first, page_height, matrix)
    second_box = _to_pixels(second, page_height, matrix)

    draw.rectangle(first_box, outline=color, width=2)
    draw.rectangle(second_box, outline=color, width=2)
    draw.line(_cut_line(info, first, page_width, page_height, matrix), fill=color, width=3)

    _draw_tag(draw, (first_box[0] + 12, first_box[1] + 12), "Part 1", color)
    _draw_tag(draw, (second_box[0] + 12, second_box[1] + 12), "Part 2", color)

    margin = round(bottom_margin * scale_y)
    if info.first_label is not None:
        _draw_label(draw, first_box, str(info.first_label), color, margin)
    if info.second_label is not None:
        _draw_label(draw, second_box, str(info.second_label), color, margin)

    return overlay


def render_preview_image(
    doc: fitz.Document,
    page_index: int,
    config: SplitConfig,
    dpi: int = 100,
    token: Optional[CancelToken] = None,
) -> PreviewRender:
    """
    Rasterize one source page and draw the planned split on it.

    page_index is clamped into the document. A cancelled token stops the
    render between steps with RenderCancelled. The image shows the page the
    way a viewer displays it, so /Rotate is applied.
    """

    index = clamp_page_index(page_index, doc.page_count)
    if token is not None:
        token.raise_if_cancelled()

    page = doc.load_page(index)
    box = page.mediabox
    info = preview_info(config, index, box.width, box.height)

    # PDFs are 72 DPI by default.
    zoom = dpi / 72.0
    pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
    if token is not None:
        token.raise_if_cancelled()

    image = Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)
    overlay = draw_split_overlay(
        image,
        info,
        box.width,
        box.height,
        use_alternate_color=config.dual_ratios and info.is_even,
        rotation_matrix=page.rotation_matrix,
        bottom_margin=config.bottom_margin,
    )
    if token is not None:
        token.raise_if_cancelled()
    return PreviewRender(image=overlay, info=info)


class PreviewSession:
    """
    Serve preview requests for one open document.

    Renders run one at a time on a worker thread. Each request cancels the
    previous one; a cancelled or superseded render resolves to None and never
    replaces `latest`.
    """

    def __init__(
        self,
        source: bytes,
        config: SplitConfig,
        dpi: int = 100,
        renderer: Renderer = render_preview_image,
    ) -> None:
        self.config = config.validate()
        self.dpi = validate_positive_int(dpi, "--dpi")
        self.latest: Optional[PreviewRender] = None
        self._doc = open_pdf_bytes(source)
        self._renderer = renderer
        self._lock = threading.Lock()
        self._token: Optional[CancelToken] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="a3split-preview")

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def request(self, page_index: int) -> "Future[Optional[PreviewRender]]":
        """Start rendering page_index, superseding any request in flight."""

        with self._lock:
            if self._token is not None:
                self._token.cancel()
            token = CancelToken()
            self._token = token
        return self._executor.submit(self._run, page_index, token)

    def _run(self, page_index: int, token: CancelToken) -> Optional[PreviewRender]:
        try:
            result = self._renderer(self._doc, page_index, self.config, self.dpi, token)
        except RenderCancelled:
            return None
        with self._lock:
            if token is not self._token or token.cancelled:
                return None
            self.latest = result
        return result

    def close(self) -> None:
        with self._lock:
            if self._token is not None:
                self._token.cancel()
        self._executor.shutdown(wait=True)
        self._doc.close()

    def __enter__(self) -> "PreviewSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def preview_pdf_page(
    pdf_path: Path,
    page_number: int,
    out_png: Path,
    config: SplitConfig,
    dpi: int,
    overwrite: bool,
    dry_run: bool,
    manifest_path: Path,
    command_string: str,
    options: Dict[str, object],
) -> None:
    """
    Write a PNG preview of one source page (1-based page_number).

    Out-of-range page numbers are clamped to the first/last page.
    """

    recorder = recorder_for(
        command_string,
        options,
        inputs={"pdf": str(pdf_path), "page": page_number},
        outputs={"out_png": str(out_png), "manifest": str(manifest_path)},
        dry_run=dry_run,
    )

    error_message: str | None = None
    summary: Dict[str, object] = {"output_png": str(out_png)}

    try:
        ensure_file_exists(pdf_path, "PDF")
        ensure_file_path(out_png, "Output PNG")
        validate_positive_int(dpi, "--dpi")
        config.validate()

        if out_png.exists() and not overwrite:
            recorder.log(f"Skipping because output exists: {out_png}")
            recorder.add_action(action="preview", status="skipped", output=str(out_png))
            summary["status"] = "skipped"
            summary["reason"] = "output exists"
            return

        with PreviewSession(pdf_path.read_bytes(), config, dpi=dpi) as session:
            total_pages = session.page_count
            ensure_pdf_has_pages(total_pages)
            index = clamp_page_index(page_number - 1, total_pages)
            if index != page_number - 1:
                recorder.log(
                    f"Page {page_number} is out of range; showing page {index + 1} "
                    f"of {total_pages}.",
                    level="warning",
                )
            recorder.inputs["page_count"] = total_pages

            if dry_run:
                recorder.log(f"[dry-run] Would render page {index + 1} -> {out_png}")
                recorder.add_action(
                    action="preview_page", status="dry-run", page=index + 1, output=str(out_png)
                )
                return

            result = session.request(index).result()
            if result is None:
                raise UserError(f"Preview of page {index + 1} was cancelled.")

        info = result.info
        axis = "vertical" if info.vertical else "horizontal"
        recorder.log(
            f"Page {index + 1}: {axis} split at {info.ratio:.3f}"
            f"{' (even-page ratio)' if config.dual_ratios and info.is_even else ''}, "
            f"labels {info.first_label}/{info.second_label}."
        )
        summary.update(
            {
                "page": index + 1,
                "vertical": info.vertical,
                "ratio": info.ratio,
                "labels": [info.first_label, info.second_label],
            }
        )

        ensure_dir(out_png.parent, dry_run=False)
        result.image.save(out_png, format="PNG")
        recorder.log(f"Wrote preview -> {out_png}")
        recorder.add_action(
            action="preview_page", status="written", page=index + 1, output=str(out_png)
        )
    except Exception as exc:  # pragma: no cover - includes validation and PyMuPDF errors
        if isinstance(exc, UserError):
            error_message = str(exc)
        else:
            error_message = f"Failed to preview PDF {pdf_path}: {exc}"
        recorder.log(error_message, level="error")
        recorder.add_action(action="preview", status="error", error=error_message)
        if isinstance(exc, UserError):
            raise
        raise UserError(error_message) from exc
    finally:
        summary["status"] = summary.get("status", "error" if error_message else "ok")
        if error_message is not None:
            summary["error"] = error_message
        recorder.write_manifest(manifest_path, summary)
