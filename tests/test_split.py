"""
Tests for the splitter, using small synthetic PDFs built in memory.
"""

from __future__ import annotations

import json
import unittest

from helpers_cli import make_pdf_bytes, workspace_temp_dir

try:
    import fitz  # PyMuPDF
except ModuleNotFoundError:  # pragma: no cover - optional dependency for local test runs
    fitz = None  # type: ignore[assignment]

from a3split.layout import SplitConfig
from a3split.utils import UserError

if fitz is not None:
    from a3split.split import split_pdf, split_pdf_bytes


def _texts(pdf_bytes: bytes) -> list[str]:
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return [page.get_text().strip() for page in doc]


def _sizes(pdf_bytes: bytes) -> list[tuple[float, float]]:
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return [(page.rect.width, page.rect.height) for page in doc]


def _label_words(pdf_bytes: bytes) -> list[tuple]:
    """(visible page rect, the one word on the page) for every output page."""

    placed = []
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        for page in doc:
            words = page.get_text("words", clip=page.rect)
            assert len(words) == 1, words
            placed.append((page.rect, words[0]))
    return placed


def _assert_bottom_center(
    test: unittest.TestCase, rect, word: tuple, margin: float = 15.0
) -> None:
    """The word is centered across rect with its baseline margin above the bottom."""

    x0, _, x1, y1 = word[:4]
    test.assertAlmostEqual((x0 + x1) / 2, rect.x0 + rect.width / 2, delta=1.5)
    # The word box ends a few points below the baseline (descender).
    gap = rect.y1 - y1
    test.assertGreater(gap, margin - 6)
    test.assertLess(gap, margin)


@unittest.skipIf(fitz is None, "PyMuPDF is required for split tests.")
class SplitBytesTests(unittest.TestCase):
    def test_output_has_two_pages_per_source_page(self) -> None:
        source = make_pdf_bytes([(1000, 700), (700, 1000), (1191, 842)])
        for config in (
            SplitConfig(),
            SplitConfig(orientation="horizontal", numbering=True),
            SplitConfig(dual_ratios=True, even_split_ratio=0.2, numbering_side="second"),
        ):
            result = split_pdf_bytes(source, config)
            with fitz.open(stream=result, filetype="pdf") as doc:
                self.assertEqual(doc.page_count, 6)

    def test_vertical_split_page_sizes(self) -> None:
        source = make_pdf_bytes([(1000, 700)])
        sizes = _sizes(split_pdf_bytes(source, SplitConfig(split_ratio=0.5)))
        self.assertAlmostEqual(sizes[0][0], 500, places=2)
        self.assertAlmostEqual(sizes[0][1], 700, places=2)
        self.assertAlmostEqual(sizes[1][0], 500, places=2)
        self.assertAlmostEqual(sizes[1][1], 700, places=2)

    def test_horizontal_split_keeps_top_region_first(self) -> None:
        source = make_pdf_bytes([(800, 1000)], markers=[(0, 20, 50, "TOPMARK")])
        result = split_pdf_bytes(source, SplitConfig(split_ratio=0.3))
        sizes = _sizes(result)
        self.assertAlmostEqual(sizes[0][1], 300, places=2)
        self.assertAlmostEqual(sizes[1][1], 700, places=2)
        with fitz.open(stream=result, filetype="pdf") as doc:
            first, second = doc[0], doc[1]
            self.assertIn("TOPMARK", first.get_text(clip=first.rect))
            self.assertNotIn("TOPMARK", second.get_text(clip=second.rect))

    def test_even_page_uses_alternate_ratio(self) -> None:
        source = make_pdf_bytes([(1000, 700), (1000, 700)])
        config = SplitConfig(split_ratio=0.5, even_split_ratio=0.3, dual_ratios=True)
        sizes = _sizes(split_pdf_bytes(source, config))
        self.assertAlmostEqual(sizes[0][0], 500, places=2)
        self.assertAlmostEqual(sizes[2][0], 300, places=2)
        self.assertAlmostEqual(sizes[3][0], 700, places=2)

    def test_numbers_are_stamped_in_order(self) -> None:
        source = make_pdf_bytes([(1000, 700)] * 3)
        config = SplitConfig(numbering=True, start_number=5, numbering_side="both")
        self.assertEqual(
            _texts(split_pdf_bytes(source, config)),
            ["5", "6", "7", "8", "9", "10"],
        )

    def test_no_text_without_numbering(self) -> None:
        source = make_pdf_bytes([(1000, 700)] * 2)
        self.assertEqual(_texts(split_pdf_bytes(source, SplitConfig())), [""] * 4)

    def test_numbering_start_index_skips_early_pages(self) -> None:
        source = make_pdf_bytes([(1000, 700)] * 3)
        config = SplitConfig(numbering=True, numbering_start_index=2, numbering_side="second")
        self.assertEqual(
            _texts(split_pdf_bytes(source, config)),
            ["", "", "", "", "", "1"],
        )

    def test_progress_strictly_increases_to_100(self) -> None:
        source = make_pdf_bytes([(1000, 700)] * 4)
        seen: list[float] = []
        split_pdf_bytes(source, SplitConfig(), on_progress=seen.append)
        self.assertEqual(seen, [25.0, 50.0, 75.0, 100.0])
        self.assertTrue(all(a < b for a, b in zip(seen, seen[1:])))

    def test_malformed_input_fails_before_progress(self) -> None:
        seen: list[float] = []
        for source in (b"", b"this is not a pdf at all"):
            with self.assertRaises(UserError):
                split_pdf_bytes(source, SplitConfig(), on_progress=seen.append)
        self.assertEqual(seen, [])

    def test_bad_font_file_fails_before_progress(self) -> None:
        source = make_pdf_bytes([(1000, 700)])
        seen: list[float] = []
        with workspace_temp_dir("font") as tmpdir:
            font_path = tmpdir / "broken.ttf"
            font_path.write_bytes(b"definitely not a font")
            with self.assertRaises(UserError):
                split_pdf_bytes(
                    source,
                    SplitConfig(numbering=True),
                    on_progress=seen.append,
                    font_file=font_path,
                )
        self.assertEqual(seen, [])

    def test_invalid_config_is_rejected(self) -> None:
        source = make_pdf_bytes([(1000, 700)])
        with self.assertRaises(UserError):
            split_pdf_bytes(source, SplitConfig(split_ratio=1.2))

    def test_source_is_not_modified(self) -> None:
        source = make_pdf_bytes([(1000, 700)])
        snapshot = bytes(source)
        split_pdf_bytes(source, SplitConfig(numbering=True))
        self.assertEqual(source, snapshot)

    def test_shifted_mediabox_is_split_like_any_other(self) -> None:
        source = make_pdf_bytes([(1000, 700)] * 2, mediabox="[100 50 1100 750]")
        result = split_pdf_bytes(source, SplitConfig(numbering=True))
        self.assertEqual(_texts(result), ["1", "2", "3", "4"])
        for width, height in _sizes(result):
            self.assertAlmostEqual(width, 500, places=2)
            self.assertAlmostEqual(height, 700, places=2)
        for rect, word in _label_words(result):
            _assert_bottom_center(self, rect, word)


@unittest.skipIf(fitz is None, "PyMuPDF is required for split tests.")
class LabelPlacementTests(unittest.TestCase):
    def test_vertical_split_labels(self) -> None:
        source = make_pdf_bytes([(1000, 700)])
        result = split_pdf_bytes(source, SplitConfig(numbering=True, split_ratio=0.4))
        placed = _label_words(result)
        self.assertEqual([word[4] for _, word in placed], ["1", "2"])
        self.assertAlmostEqual(placed[0][0].width, 400, places=2)
        for rect, word in placed:
            _assert_bottom_center(self, rect, word)

    def test_horizontal_split_labels(self) -> None:
        source = make_pdf_bytes([(800, 1000)])
        result = split_pdf_bytes(source, SplitConfig(numbering=True, split_ratio=0.3))
        placed = _label_words(result)
        self.assertAlmostEqual(placed[0][0].height, 300, places=2)
        self.assertAlmostEqual(placed[1][0].height, 700, places=2)
        for rect, word in placed:
            _assert_bottom_center(self, rect, word)

    def test_larger_margin_moves_label_up(self) -> None:
        source = make_pdf_bytes([(1000, 700)])
        config = SplitConfig(numbering=True, bottom_margin=60, font_size=14)
        for rect, word in _label_words(split_pdf_bytes(source, config)):
            _assert_bottom_center(self, rect, word, margin=60)

    def test_rotated_page_labels_follow_displayed_page(self) -> None:
        # Stored 700x1000 and shown landscape through /Rotate 90.
        source = make_pdf_bytes([(700, 1000)], rotation=90)
        result = split_pdf_bytes(source, SplitConfig(numbering=True))
        placed = _label_words(result)
        self.assertEqual([word[4] for _, word in placed], ["1", "2"])
        for rect, word in placed:
            self.assertAlmostEqual(rect.width, 500, places=2)
            self.assertAlmostEqual(rect.height, 700, places=2)
            _assert_bottom_center(self, rect, word)


@unittest.skipIf(fitz is None, "PyMuPDF is required for split tests.")
class SplitFileTests(unittest.TestCase):
    def _options(self) -> dict:
        return {"version": "0.0.0", "verbosity": "quiet"}

    def test_writes_output_and_manifest(self) -> None:
        with workspace_temp_dir("split") as tmpdir:
            pdf_path = tmpdir / "scan.pdf"
            pdf_path.write_bytes(make_pdf_bytes([(1000, 700)] * 2))
            out_pdf = tmpdir / "out" / "scan_a4.pdf"
            manifest_path = tmpdir / "out" / "manifest.json"

            split_pdf(
                pdf_path=pdf_path,
                out_pdf=out_pdf,
                config=SplitConfig(numbering=True),
                overwrite=False,
                dry_run=False,
                manifest_path=manifest_path,
                command_string="a3-split split",
                options=self._options(),
            )

            self.assertEqual(_texts(out_pdf.read_bytes()), ["1", "2", "3", "4"])
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
            self.assertEqual(manifest["summary"]["status"], "ok")
            self.assertEqual(manifest["summary"]["output_page_count"], 4)
            self.assertEqual(manifest["action_counts"].get("written"), 2)
            self.assertEqual(manifest["actions"][1]["labels"], [3, 4])

    def test_dry_run_writes_nothing(self) -> None:
        with workspace_temp_dir("split") as tmpdir:
            pdf_path = tmpdir / "scan.pdf"
            pdf_path.write_bytes(make_pdf_bytes([(1000, 700)]))
            out_pdf = tmpdir / "scan_a4.pdf"
            manifest_path = tmpdir / "manifest.json"

            split_pdf(
                pdf_path=pdf_path,
                out_pdf=out_pdf,
                config=SplitConfig(),
                overwrite=False,
                dry_run=True,
                manifest_path=manifest_path,
                command_string="a3-split split --dry-run",
                options=self._options(),
            )

            self.assertFalse(out_pdf.exists())
            self.assertFalse(manifest_path.exists())

    def test_existing_output_is_skipped_without_overwrite(self) -> None:
        with workspace_temp_dir("split") as tmpdir:
            pdf_path = tmpdir / "scan.pdf"
            pdf_path.write_bytes(make_pdf_bytes([(1000, 700)]))
            out_pdf = tmpdir / "scan_a4.pdf"
            out_pdf.write_bytes(b"keep me")
            manifest_path = tmpdir / "manifest.json"

            split_pdf(
                pdf_path=pdf_path,
                out_pdf=out_pdf,
                config=SplitConfig(),
                overwrite=False,
                dry_run=False,
                manifest_path=manifest_path,
                command_string="a3-split split",
                options=self._options(),
            )

            self.assertEqual(out_pdf.read_bytes(), b"keep me")
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
            self.assertEqual(manifest["summary"]["status"], "skipped")

    def test_same_input_and_output_is_refused(self) -> None:
        with workspace_temp_dir("split") as tmpdir:
            pdf_path = tmpdir / "scan.pdf"
            pdf_path.write_bytes(make_pdf_bytes([(1000, 700)]))
            with self.assertRaises(UserError):
                split_pdf(
                    pdf_path=pdf_path,
                    out_pdf=pdf_path,
                    config=SplitConfig(),
                    overwrite=True,
                    dry_run=False,
                    manifest_path=tmpdir / "manifest.json",
                    command_string="a3-split split",
                    options=self._options(),
                )

    def test_malformed_input_leaves_no_output(self) -> None:
        with workspace_temp_dir("split") as tmpdir:
            pdf_path = tmpdir / "scan.pdf"
            pdf_path.write_bytes(b"%PDF-garbage")
            out_pdf = tmpdir / "scan_a4.pdf"
            manifest_path = tmpdir / "manifest.json"

            with self.assertRaises(UserError):
                split_pdf(
                    pdf_path=pdf_path,
                    out_pdf=out_pdf,
                    config=SplitConfig(),
                    overwrite=False,
                    dry_run=False,
                    manifest_path=manifest_path,
                    command_string="a3-split split",
                    options=self._options(),
                )

            self.assertFalse(out_pdf.exists())
            self.assertEqual(list(tmpdir.glob("scan_a4_tmp_*")), [])
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
            self.assertEqual(manifest["summary"]["status"], "error")


if __name__ == "__main__":
    unittest.main()
