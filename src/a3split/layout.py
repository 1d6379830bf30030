"""
Split geometry and page-number planning.

Why this module exists:
- The splitter and the preview must agree exactly on where a page is cut and
  which number lands on which half.
- Both read their answers from here, so there is only one copy of the
  formulas. Nothing in this module touches PDF bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Optional, Tuple

from .utils import (
    UserError,
    validate_choice,
    validate_fraction,
    validate_positive_int,
)


ORIENTATIONS = ("auto", "vertical", "horizontal")
NUMBERING_SIDES = ("both", "first", "second")


class Rect(NamedTuple):
    """Crop window in PDF points: (x, y, width, height), origin bottom-left."""

    x: float
    y: float
    width: float
    height: float

    @property
    def x1(self) -> float:
        return self.x + self.width

    @property
    def y1(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class SplitConfig:
    """Options for one split run. Immutable once built."""

    orientation: str = "auto"
    split_ratio: float = 0.5
    even_split_ratio: Optional[float] = None
    dual_ratios: bool = False
    numbering: bool = False
    start_number: int = 1
    numbering_start_index: int = 0
    numbering_side: str = "both"
    font_size: float = 10.0
    bottom_margin: float = 15.0

    def validate(self) -> "SplitConfig":
        """Raise UserError for any out-of-range option and return self."""

        validate_choice(self.orientation, ORIENTATIONS, "orientation")
        validate_fraction(self.split_ratio, "split_ratio")
        if self.even_split_ratio is not None:
            validate_fraction(self.even_split_ratio, "even_split_ratio")
        validate_positive_int(self.start_number, "start_number")
        if (
            isinstance(self.numbering_start_index, bool)
            or not isinstance(self.numbering_start_index, int)
            or self.numbering_start_index < 0
        ):
            raise UserError("numbering_start_index must be an integer >= 0.")
        validate_choice(self.numbering_side, NUMBERING_SIDES, "numbering_side")
        if self.font_size <= 0:
            raise UserError("font_size must be > 0.")
        if self.bottom_margin < 0:
            raise UserError("bottom_margin must be >= 0.")
        return self

    @property
    def numbers_first(self) -> bool:
        return self.numbering_side in {"both", "first"}

    @property
    def numbers_second(self) -> bool:
        return self.numbering_side in {"both", "second"}

    @property
    def numbers_per_page(self) -> int:
        return 2 if self.numbering_side == "both" else 1


@dataclass(frozen=True)
class PagePlan:
    """Everything the splitter needs to know about one source page."""

    index: int
    vertical: bool
    ratio: float
    first: Rect
    second: Rect
    first_label: Optional[int]
    second_label: Optional[int]


@dataclass(frozen=True)
class PreviewInfo:
    """What the preview shows for the page currently on screen."""

    index: int
    vertical: bool
    ratio: float
    is_even: bool
    first_label: Optional[int]
    second_label: Optional[int]


def is_even_page(index: int) -> bool:
    """
    True for the 2nd, 4th, 6th... source page.

    Parity is taken on the 1-based page number, so zero-based index 1 is the
    first "even" page.
    """

    return index % 2 == 1


def active_ratio(config: SplitConfig, index: int) -> float:
    """Pick the split ratio for a source page."""

    if config.dual_ratios and is_even_page(index) and config.even_split_ratio is not None:
        return config.even_split_ratio
    return config.split_ratio


def use_vertical_split(config: SplitConfig, width: float, height: float) -> bool:
    """Landscape pages are cut left/right in auto mode, portrait top/bottom."""

    if config.orientation == "auto":
        return width > height
    return config.orientation == "vertical"


def split_rects(width: float, height: float, ratio: float, vertical: bool) -> Tuple[Rect, Rect]:
    """
    Cut a page into (first, second) crop windows.

    First is always the left half of a vertical cut and the top half of a
    horizontal cut.
    """

    if vertical:
        split_x = width * ratio
        return (
            Rect(0.0, 0.0, split_x, height),
            Rect(split_x, 0.0, width - split_x, height),
        )

    split_y = height * (1 - ratio)
    return (
        Rect(0.0, split_y, width, height - split_y),
        Rect(0.0, 0.0, width, split_y),
    )


def numbering_sequence(config: SplitConfig, page_count: int) -> List[Optional[int]]:
    """
    Page labels for every output half, in output order.

    Two slots per source page (first half, second half). None means the half
    gets no number. The counter only moves forward.
    """

    labels: List[Optional[int]] = []
    counter = config.start_number
    for index in range(page_count):
        eligible = config.numbering and index >= config.numbering_start_index
        first_label: Optional[int] = None
        second_label: Optional[int] = None
        if eligible and config.numbers_first:
            first_label = counter
            counter += 1
        if eligible and config.numbers_second:
            second_label = counter
            counter += 1
        labels.extend((first_label, second_label))
    return labels


def plan_pages(
    config: SplitConfig,
    sizes: Iterable[Tuple[float, float]],
) -> List[PagePlan]:
    """Build one PagePlan per (width, height) source page size."""

    size_list = list(sizes)
    labels = numbering_sequence(config, len(size_list))
    plans: List[PagePlan] = []
    for index, (width, height) in enumerate(size_list):
        ratio = active_ratio(config, index)
        vertical = use_vertical_split(config, width, height)
        first, second = split_rects(width, height, ratio, vertical)
        plans.append(
            PagePlan(
                index=index,
                vertical=vertical,
                ratio=ratio,
                first=first,
                second=second,
                first_label=labels[2 * index],
                second_label=labels[2 * index + 1],
            )
        )
    return plans


def preview_info(config: SplitConfig, index: int, width: float, height: float) -> PreviewInfo:
    """
    Predict axis, ratio and labels for one page without walking earlier pages.

    The caller is responsible for clamping index into the document.
    """

    first_label: Optional[int] = None
    second_label: Optional[int] = None
    if config.numbering and index >= config.numbering_start_index:
        prior = max(0, index - config.numbering_start_index)
        counter = config.start_number + prior * config.numbers_per_page
        if config.numbers_first:
            first_label = counter
            counter += 1
        if config.numbers_second:
            second_label = counter

    return PreviewInfo(
        index=index,
        vertical=use_vertical_split(config, width, height),
        ratio=active_ratio(config, index),
        is_even=is_even_page(index),
        first_label=first_label,
        second_label=second_label,
    )


def clamp_page_index(index: int, page_count: int) -> int:
    """Clamp a zero-based index into [0, page_count - 1]."""

    if page_count <= 0:
        raise UserError("PDF has no pages.")
    return min(max(0, index), page_count - 1)


def label_position(rect: Rect, text_width: float, margin: float) -> Tuple[float, float]:
    """Baseline start point that centers a label near the bottom of rect."""

    return rect.x + rect.width / 2 - text_width / 2, rect.y + margin
