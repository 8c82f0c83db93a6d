"""PDF renderer tests. Layout is checked on the positioned text ops, not by parsing the PDF."""

from unittest.mock import patch

import pytest
from reportlab.pdfbase.pdfmetrics import stringWidth

from dfvd import report as renderer
from dfvd.errors import RenderInputIncomplete
from dfvd.report import (
    BOTTOM,
    FONT,
    SECTION_MIN_HEIGHTS,
    USABLE_WIDTH,
    VERDICT_COLORS,
    layout_report,
    line_height,
    missing_fields,
    render_pdf,
    report_filename,
    stamp_footers,
    wrap_text,
)

BASE_ORDER = ["title", "verdict", "summary", "case_overview", "file_metadata", "detection_parameters", "frame_summary"]


def _op(layout, prefix):
    for page in layout.pages:
        for op in page:
            if op.text.startswith(prefix):
                return op
    raise AssertionError(f"no text op starting with {prefix!r}")


class TestRenderPdf:
    def test_produces_pdf(self, report):
        pdf = render_pdf(report)

        assert pdf.startswith(b"%PDF-")
        assert pdf.rstrip().endswith(b"%%EOF")

    def test_same_report_same_bytes(self, report):
        assert render_pdf(report) == render_pdf(report)

    def test_dict_and_model_render_identically(self, report, payload):
        assert render_pdf(payload) == render_pdf(report)

    def test_missing_verdict_fails_before_drawing(self, payload):
        del payload["overallVerdict"]

        with patch.object(renderer.canvas, "Canvas") as canvas_cls:
            with pytest.raises(RenderInputIncomplete) as exc:
                render_pdf(payload)
        canvas_cls.assert_not_called()
        assert exc.value.missing == ["overallVerdict"]

    def test_non_numeric_confidence_is_incomplete(self, payload):
        payload["averageConfidence"] = "high"

        with pytest.raises(RenderInputIncomplete) as exc:
            render_pdf(payload)
        assert "averageConfidence" in exc.value.missing


class TestLayout:
    def test_base_section_order(self, report):
        layout = layout_report(report)

        assert [s.name for s in layout.sections] == BASE_ORDER

    def test_absent_enrichments_leave_no_gap(self, report):
        layout = layout_report(report)
        summary = layout.section("summary")
        case = layout.section("case_overview")

        assert layout.section("temporal_consistency") is None
        assert case.page == summary.page
        assert case.top == summary.bottom

    def test_enriched_section_order(self, enriched_payload):
        layout = layout_report(enriched_payload)

        assert [s.name for s in layout.sections] == [
            "title",
            "verdict",
            "summary",
            "temporal_consistency",
            "audio_visual_sync",
            "detailed_summary",
            "case_overview",
            "file_metadata",
            "detection_parameters",
            "frame_summary",
        ]
        assert "Consistency Score: 0.42 / 1.0" in layout.texts()
        assert "Deviation Index: 0.31" in layout.texts()

    def test_incomplete_enrichment(self, payload):
        payload["temporalConsistency"] = {"score": 0.4}

        with pytest.raises(RenderInputIncomplete) as exc:
            layout_report(payload)
        assert exc.value.missing == ["temporalConsistency.interpretation"]

    def test_every_section_starts_with_its_minimum_height_free(self, enriched_payload):
        enriched_payload["detailedSummary"]["content"] = "Blending artifacts around the jaw. " * 100
        layout = layout_report(enriched_payload)

        assert len(layout.pages) > 1
        for s in layout.sections:
            assert s.top + SECTION_MIN_HEIGHTS[s.name] <= BOTTOM, s.name

    def test_text_stays_above_bottom_margin(self, enriched_payload):
        enriched_payload["detailedSummary"]["content"] = "Blending artifacts around the jaw. " * 100
        layout = layout_report(enriched_payload)

        for page in layout.pages:
            for op in page:
                assert op.y <= BOTTOM

    def test_verdict_is_colored(self, report):
        op = _op(layout_report(report), "FAKE")

        assert op.color == VERDICT_COLORS["FAKE"]

    def test_frame_aggregates(self, report):
        texts = layout_report(report).texts()

        assert "Total classified frames: 3" in texts
        assert "High confidence frames (>80%): 2" in texts
        assert "Frames classified as FAKE: 2" in texts
        assert "Fake Ratio: 66.7%" in texts

    def test_zero_frames(self, payload):
        payload.update(frameClassifications=[], totalFramesAnalyzed=0, fakeFramesDetected=0, realFramesDetected=0)
        layout = layout_report(payload)

        assert "Fake Ratio: N/A" in layout.texts()
        assert "Total classified frames: 0" in layout.texts()
        assert layout.section("frame_summary") is not None


class TestFingerprint:
    def test_long_fingerprint_wraps_under_label(self, report):
        layout = layout_report(report)
        label = _op(layout, "Content Fingerprint:")
        value = _op(layout, report.file_metadata.content_fingerprint)

        assert label.text == "Content Fingerprint:"
        assert value.y - label.y == pytest.approx(line_height(10))

    def test_wrapped_lines_are_accounted_in_section_height(self, report):
        inline = layout_report(report, inline_width=USABLE_WIDTH).section("file_metadata")
        wrapped = layout_report(report).section("file_metadata")

        # Inline: one line plus 20mm. Wrapped: two 10pt lines plus 10mm.
        wrapped_height = wrapped.bottom - wrapped.top
        inline_height = inline.bottom - inline.top
        assert wrapped_height - inline_height == pytest.approx(2 * line_height(10) - 10 * renderer.mm)

    def test_short_fingerprint_is_inline(self, report):
        layout = layout_report(report, inline_width=USABLE_WIDTH)
        op = _op(layout, "Content Fingerprint:")

        assert op.text == f"Content Fingerprint: {report.file_metadata.content_fingerprint}"

    def test_very_long_value_spans_lines(self, payload):
        payload["fileMetadata"]["contentFingerprint"] = "ab" * 100
        layout = layout_report(payload)

        value_lines = [op for page in layout.pages for op in page if op.text and set(op.text) <= {"a", "b"}]
        assert len(value_lines) >= 2
        assert "".join(op.text for op in value_lines) == "ab" * 100


    def test_fingerprint_is_never_truncated(self, payload):
        payload["fileMetadata"]["contentFingerprint"] = "cd" * 400
        layout = layout_report(payload)

        value_lines = [op.text for page in layout.pages for op in page if op.text and set(op.text) <= {"c", "d"}]
        assert "".join(value_lines) == "cd" * 400


class TestLongText:
    def test_detailed_summary_is_wrapped_in_full(self, enriched_payload):
        words = [f"artifact{i:04d}" for i in range(600)]
        enriched_payload["detailedSummary"]["content"] = " ".join(words)
        layout = layout_report(enriched_payload)

        emitted = " ".join(t for t in layout.texts() if t.startswith("artifact"))
        assert emitted.split(" ") == words
        assert "..." not in emitted

    def test_interpretation_is_wrapped_in_full(self, enriched_payload):
        words = [f"flicker{i:04d}" for i in range(200)]
        enriched_payload["temporalConsistency"]["interpretation"] = " ".join(words)
        layout = layout_report(enriched_payload)

        lines = [t for t in layout.texts() if t.startswith("Interpretation:") or t.startswith("flicker")]
        assert " ".join(lines) == "Interpretation: " + " ".join(words)


class TestFooters:
    def test_every_page_is_numbered(self, enriched_payload):
        enriched_payload["detailedSummary"]["content"] = "Blending artifacts around the jaw. " * 100
        layout = layout_report(enriched_payload)
        blocks = stamp_footers(layout, enriched_payload)

        n = len(layout.pages)
        assert n > 1
        for i, block in enumerate(blocks, start=1):
            texts = [op.text for op in block.ops]
            assert f"Page {i} of {n}" in texts
            assert "Generated by Gemini AI Analysis System - Gemini 2.5 Pro v2.5.0" in texts


class TestHelpers:
    def test_wrap_respects_width(self):
        text = "the quick brown fox jumps over the lazy dog " * 10
        lines = wrap_text(text.strip(), FONT, 10, 120)

        assert len(lines) > 1
        assert all(stringWidth(ln, FONT, 10) <= 120 for ln in lines)
        assert " ".join(lines) == text.strip()

    def test_wrap_splits_long_words(self):
        lines = wrap_text("x" * 300, FONT, 10, 100)

        assert len(lines) > 1
        assert "".join(lines) == "x" * 300

    def test_wrap_empty(self):
        assert wrap_text("", FONT, 10, 100) == [""]

    def test_missing_fields_on_complete_payload(self, enriched_payload):
        assert missing_fields(enriched_payload) == []

    def test_report_filename(self):
        assert report_filename("DFVD-20260101-120000-AAAAAA") == "analysis-DFVD-20260101-120000-AAAAAA.pdf"
        assert report_filename("../etc/passwd") == "analysis-.._etc_passwd.pdf"
