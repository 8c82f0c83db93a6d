"""
PDF rendering of an analysis report.

Rendering is two-phase:
  1. layout_report() walks the fixed section order with a (page, y) cursor and
     produces a list of pages, each a list of positioned text operations.
     Before each section the cursor breaks to a new page if the section's
     minimum height no longer fits.
  2. stamp_footers() adds "Generated by ..." and "Page i of n" to every page
     once n is known; render_pdf() then serialises the pages with reportlab.

Coordinates in this module are measured from the top of the page; they are
flipped to reportlab's bottom-left origin only when drawing.
"""

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple, Union

from reportlab.lib.colors import Color, black
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from .errors import RenderInputIncomplete
from .models import Report

logger = logging.getLogger("dfvd.report")

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 20 * mm
TOP = 20 * mm
USABLE_WIDTH = PAGE_WIDTH - 2 * MARGIN
BOTTOM = PAGE_HEIGHT - MARGIN
FOOTER_Y = PAGE_HEIGHT - 10 * mm

LINE_HEIGHT_FACTOR = 1.15

# Fingerprint lines wider than this are wrapped instead of drawn inline.
FINGERPRINT_INLINE_WIDTH = 100 * mm

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

VERDICT_COLORS = {
    "FAKE": Color(1, 0, 0),
    "REAL": Color(0, 128 / 255, 0),
    "INCONCLUSIVE": Color(1, 165 / 255, 0),
}

# (section, minimum height needed before it is started on the current page)
SECTION_MIN_HEIGHTS = {
    "title": 0,
    "verdict": 30 * mm,
    "summary": 50 * mm,
    "temporal_consistency": 40 * mm,
    "audio_visual_sync": 40 * mm,
    "detailed_summary": 60 * mm,
    "case_overview": 50 * mm,
    "file_metadata": 60 * mm,
    "detection_parameters": 50 * mm,
    "frame_summary": 30 * mm,
}

REQUIRED_FIELDS = [
    "reportId",
    "preparedBy",
    "dateOfAnalysis",
    "toolModelUsed",
    "detectionEngineVersion",
    "caseOverview.caseReference",
    "caseOverview.sourceOfVideo",
    "caseOverview.suspectedContentType",
    "fileMetadata.fileName",
    "fileMetadata.fileFormat",
    "fileMetadata.duration",
    "fileMetadata.frameRate",
    "fileMetadata.contentFingerprint",
    "fileMetadata.dateOfFileCreation",
    "detectionParameters.frameSamplingRate",
    "detectionParameters.facialLandmarkDetection",
    "detectionParameters.audioVisualSyncCheck",
    "detectionParameters.classificationThreshold",
    "frameClassifications",
    "overallVerdict",
    "averageConfidence",
    "totalFramesAnalyzed",
    "fakeFramesDetected",
    "realFramesDetected",
]

NUMERIC_FIELDS = {
    "detectionParameters.classificationThreshold",
    "averageConfidence",
    "totalFramesAnalyzed",
    "fakeFramesDetected",
    "realFramesDetected",
}

# Optional sections: if present, these members must be too.
OPTIONAL_SECTION_FIELDS = {
    "temporalConsistency": [("score", True), ("interpretation", False)],
    "audioVisualSync": [("deviationIndex", True), ("observation", False)],
    "detailedSummary": [("confidenceScore", True), ("operationalThreshold", True), ("content", False)],
}


@dataclass(frozen=True)
class TextOp:
    x: float
    y: float
    text: str
    font: str = FONT
    size: float = 12
    color: Color = black


@dataclass(frozen=True)
class PlacedSection:
    name: str
    page: int
    top: float
    bottom: float


@dataclass
class DocumentLayout:
    pages: List[List[TextOp]]
    sections: List[PlacedSection] = field(default_factory=list)

    def section(self, name: str) -> Optional[PlacedSection]:
        for s in self.sections:
            if s.name == name:
                return s
        return None

    def texts(self) -> List[str]:
        return [op.text for page in self.pages for op in page]


@dataclass(frozen=True)
class PageBlock:
    number: int
    total: int
    ops: Tuple[TextOp, ...]


def _safe_text(v: Any, max_len: Optional[int] = 600) -> str:
    # The built-in PDF fonts are not full-Unicode; coerce to latin-1 with replacement.
    if v is None:
        return ""
    s = str(v)
    s = s.replace("\x00", " ")
    s = re.sub(r"\s+", " ", s).strip()
    if max_len is not None and len(s) > max_len:
        s = s[:max_len] + "..."
    return s.encode("latin-1", "replace").decode("latin-1")


def line_height(size: float) -> float:
    return size * LINE_HEIGHT_FACTOR


def _fit(word: str, font: str, size: float, max_width: float) -> int:
    n = 1
    while n < len(word) and stringWidth(word[: n + 1], font, size) <= max_width:
        n += 1
    return n


def wrap_text(text: str, font: str, size: float, max_width: float) -> List[str]:
    """Greedy word wrap by rendered width; words wider than a line are split."""
    lines: List[str] = []
    current = ""
    for word in text.split(" "):
        candidate = f"{current} {word}" if current else word
        if stringWidth(candidate, font, size) <= max_width:
            current = candidate
            continue
        if current:
            lines.append(current)
        while stringWidth(word, font, size) > max_width:
            cut = _fit(word, font, size, max_width)
            lines.append(word[:cut])
            word = word[cut:]
        current = word
    if current or not lines:
        lines.append(current)
    return lines


# -----------------------------
# Input checks
# -----------------------------
def _lookup(payload: Mapping[str, Any], path: str) -> Any:
    value: Any = payload
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def missing_fields(payload: Mapping[str, Any]) -> List[str]:
    missing = []
    for path in REQUIRED_FIELDS:
        value = _lookup(payload, path)
        if value is None or (path in NUMERIC_FIELDS and not _is_number(value)):
            missing.append(path)
    if not isinstance(_lookup(payload, "frameClassifications"), list) and "frameClassifications" not in missing:
        missing.append("frameClassifications")

    for section, members in OPTIONAL_SECTION_FIELDS.items():
        block = payload.get(section)
        if not block:
            continue
        for name, numeric in members:
            value = block.get(name) if isinstance(block, Mapping) else None
            if value is None or (numeric and not _is_number(value)):
                missing.append(f"{section}.{name}")
    return missing


def _as_payload(report: Union[Report, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(report, Report):
        return report.to_payload()
    if not isinstance(report, Mapping):
        raise RenderInputIncomplete(["report"])
    return report


# -----------------------------
# Phase 1: layout
# -----------------------------
class _Cursor:
    def __init__(self):
        self.pages: List[List[TextOp]] = [[]]
        self.y = TOP
        self.sections: List[PlacedSection] = []
        self._open: Optional[Tuple[str, int, float]] = None

    @property
    def page(self) -> int:
        return len(self.pages) - 1

    def new_page(self) -> None:
        self.pages.append([])
        self.y = TOP

    def begin(self, name: str) -> None:
        if self.y + SECTION_MIN_HEIGHTS[name] > BOTTOM:
            self.new_page()
        self._open = (name, self.page, self.y)

    def end(self) -> None:
        name, page, top = self._open
        self.sections.append(PlacedSection(name, page, top, self.y))
        self._open = None

    def text(self, s: str, x: float = MARGIN, font: str = FONT, size: float = 12, color: Color = black) -> None:
        self.pages[-1].append(TextOp(x, self.y, s, font, size, color))

    def heading(self, s: str) -> None:
        self.text(s, font=FONT_BOLD, size=16)
        self.y += 10 * mm

    def line(self, s: str, after: float = 8 * mm) -> None:
        self.text(s)
        self.y += after

    def wrapped(self, s: str, max_width: float = USABLE_WIDTH, size: float = 10) -> int:
        lines = wrap_text(s, FONT, size, max_width)
        lh = line_height(size)
        for ln in lines:
            if self.y + lh > BOTTOM:
                self.new_page()
            self.text(ln, size=size)
            self.y += lh
        return len(lines)


def _pct(v: float) -> str:
    return f"{v * 100:.1f}%"


def layout_report(report: Union[Report, Mapping[str, Any]], inline_width: float = FINGERPRINT_INLINE_WIDTH) -> DocumentLayout:
    payload = _as_payload(report)
    missing = missing_fields(payload)
    if missing:
        raise RenderInputIncomplete(missing)

    cur = _Cursor()
    case = payload["caseOverview"]
    meta = payload["fileMetadata"]
    params = payload["detectionParameters"]
    frames = payload["frameClassifications"]

    cur.begin("title")
    cur.text("Deepfake Analysis Report", font=FONT_BOLD, size=20)
    cur.y += 15 * mm
    cur.text(f"Report ID: {_safe_text(payload['reportId'])}")
    cur.text(f"Date: {_safe_text(payload['dateOfAnalysis'])}", x=MARGIN + 100 * mm)
    cur.y += 15 * mm
    cur.end()

    verdict = str(payload["overallVerdict"])
    cur.begin("verdict")
    cur.heading("Overall Verdict")
    cur.text(_safe_text(verdict), font=FONT_BOLD, size=14, color=VERDICT_COLORS.get(verdict, black))
    cur.y += 10 * mm
    cur.line(f"Average Confidence: {_pct(payload['averageConfidence'])}", after=20 * mm)
    cur.end()

    total = payload["totalFramesAnalyzed"]
    fake = payload["fakeFramesDetected"]
    cur.begin("summary")
    cur.heading("Analysis Summary")
    cur.line(f"Total Frames Analyzed: {total}")
    cur.line(f"Fake Frames Detected: {fake}")
    cur.line(f"Real Frames Detected: {payload['realFramesDetected']}")
    cur.line(f"Fake Ratio: {_pct(fake / total) if total else 'N/A'}", after=20 * mm)
    cur.end()

    temporal = payload.get("temporalConsistency")
    if temporal:
        cur.begin("temporal_consistency")
        cur.heading("Temporal Consistency Analysis")
        cur.line(f"Consistency Score: {temporal['score']:.2f} / 1.0")
        cur.wrapped(f"Interpretation: {_safe_text(temporal['interpretation'], max_len=None)}")
        cur.y += 10 * mm
        cur.end()

    sync = payload.get("audioVisualSync")
    if sync:
        cur.begin("audio_visual_sync")
        cur.heading("Audio-Visual Sync Analysis")
        cur.line(f"Deviation Index: {sync['deviationIndex']:.2f}")
        cur.wrapped(f"Observation: {_safe_text(sync['observation'], max_len=None)}")
        cur.y += 10 * mm
        cur.end()

    detailed = payload.get("detailedSummary")
    if detailed:
        cur.begin("detailed_summary")
        cur.heading("Detailed Analysis Summary")
        cur.line(f"Model Confidence: {_pct(detailed['confidenceScore'])}")
        cur.line(f"Operational Threshold: {_pct(detailed['operationalThreshold'])}", after=10 * mm)
        cur.wrapped(_safe_text(detailed["content"], max_len=None))
        cur.y += 15 * mm
        cur.end()

    cur.begin("case_overview")
    cur.heading("Case Overview")
    cur.line(f"Case Reference: {_safe_text(case['caseReference'])}")
    cur.line(f"Source: {_safe_text(case['sourceOfVideo'])}")
    cur.line(f"Content Type: {_safe_text(case['suspectedContentType'])}", after=20 * mm)
    cur.end()

    cur.begin("file_metadata")
    cur.heading("File Metadata")
    cur.line(f"File Name: {_safe_text(meta['fileName'])}")
    cur.line(f"Format: {_safe_text(meta['fileFormat'])}")
    cur.line(f"Duration: {_safe_text(meta['duration'])}")
    cur.line(f"Frame Rate: {_safe_text(meta['frameRate'])}")
    cur.line(f"Creation Date: {_safe_text(meta['dateOfFileCreation'])}")
    label = "Content Fingerprint:"
    value = _safe_text(meta["contentFingerprint"], max_len=None)
    if stringWidth(f"{label} {value}", FONT, 12) > inline_width:
        # Label on its own line, value wrapped underneath.
        if cur.y + 16 * mm > BOTTOM:
            cur.new_page()
        cur.wrapped(label)
        cur.wrapped(value, max_width=inline_width)
        cur.y += 10 * mm
    else:
        cur.line(f"{label} {value}", after=20 * mm)
    cur.end()

    cur.begin("detection_parameters")
    cur.heading("Detection Parameters")
    cur.line(f"Frame Sampling Rate: {_safe_text(params['frameSamplingRate'])}")
    cur.line(f"Facial Landmark Detection: {_safe_text(params['facialLandmarkDetection'])}")
    cur.line(f"Audio-Visual Sync Check: {_safe_text(params['audioVisualSyncCheck'])}")
    cur.line(f"Classification Threshold: {params['classificationThreshold']:g}", after=20 * mm)
    cur.end()

    # Aggregates only; the per-frame table is never printed.
    high_confidence = sum(1 for f in frames if isinstance(f, Mapping) and (f.get("confidence") or 0) > 0.8)
    fake_frames = sum(1 for f in frames if isinstance(f, Mapping) and f.get("label") == "FAKE")
    cur.begin("frame_summary")
    cur.heading("Frame-Level Classification Summary")
    cur.line(f"Total classified frames: {len(frames)}")
    cur.line(f"High confidence frames (>80%): {high_confidence}")
    cur.line(f"Frames classified as FAKE: {fake_frames}", after=20 * mm)
    cur.end()

    return DocumentLayout(pages=cur.pages, sections=cur.sections)


# -----------------------------
# Phase 2: footers + serialisation
# -----------------------------
def stamp_footers(layout: DocumentLayout, report: Union[Report, Mapping[str, Any]]) -> List[PageBlock]:
    payload = _as_payload(report)
    attribution = _safe_text(
        f"Generated by {payload['preparedBy']} - {payload['toolModelUsed']} v{payload['detectionEngineVersion']}"
    )
    total = len(layout.pages)
    blocks = []
    for i, ops in enumerate(layout.pages, start=1):
        footer = (
            TextOp(MARGIN, FOOTER_Y, attribution, size=10),
            TextOp(PAGE_WIDTH - MARGIN - 30 * mm, FOOTER_Y, f"Page {i} of {total}", size=10),
        )
        blocks.append(PageBlock(number=i, total=total, ops=tuple(ops) + footer))
    return blocks


def _serialize(blocks: List[PageBlock], title: str, author: str) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4, invariant=1)
    c.setTitle(title)
    c.setAuthor(author)
    c.setCreator("dfvd")
    for block in blocks:
        for op in block.ops:
            c.setFont(op.font, op.size)
            c.setFillColor(op.color)
            c.drawString(op.x, PAGE_HEIGHT - op.y, op.text)
        c.showPage()
    c.save()
    return buf.getvalue()


def render_pdf(report: Union[Report, Mapping[str, Any]], inline_width: float = FINGERPRINT_INLINE_WIDTH) -> bytes:
    """Render a report to PDF bytes. Raises RenderInputIncomplete before producing any output."""
    payload = _as_payload(report)
    layout = layout_report(payload, inline_width=inline_width)
    blocks = stamp_footers(layout, payload)
    pdf = _serialize(
        blocks,
        title=_safe_text(f"Deepfake Analysis Report {payload['reportId']}"),
        author=_safe_text(payload["preparedBy"]),
    )
    logger.info(f"Rendered report {payload['reportId']} ({len(blocks)} pages, {len(pdf)} bytes)")
    return pdf


def report_filename(report_id: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", str(report_id))
    return f"analysis-{safe}.pdf"
