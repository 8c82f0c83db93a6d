"""Pytest configuration and fixtures."""

import copy
import datetime
from typing import Iterable

import pytest

from dfvd.models import Report
from dfvd.store import ReportStore

FINGERPRINT = "9e107d9d372bb6826bd81d3542a419d6"

BASE_PAYLOAD = {
    "reportId": "DFVD-20260101-120000-AAAAAA",
    "preparedBy": "Gemini AI Analysis System",
    "dateOfAnalysis": "1 January 2026",
    "toolModelUsed": "Gemini 2.5 Pro",
    "detectionEngineVersion": "2.5.0",
    "caseOverview": {
        "caseReference": "CYB/0042/2026/",
        "sourceOfVideo": "User Upload",
        "suspectedContentType": "Video Content",
    },
    "fileMetadata": {
        "fileName": "clip.mp4",
        "fileFormat": "MP4",
        "duration": "00:03",
        "frameRate": "30 fps",
        "contentFingerprint": FINGERPRINT,
        "dateOfFileCreation": "Estimated based on analysis",
    },
    "detectionParameters": {
        "frameSamplingRate": "1 frame/sec",
        "facialLandmarkDetection": "Enabled (68-point model)",
        "audioVisualSyncCheck": "Enabled",
        "classificationThreshold": 0.85,
    },
    "frameClassifications": [
        {"frameNumber": 0, "timestamp": "00:00", "confidence": 0.9, "label": "FAKE"},
        {"frameNumber": 30, "timestamp": "00:01", "confidence": 0.5, "label": "REAL"},
        {"frameNumber": 60, "timestamp": "00:02", "confidence": 0.85, "label": "FAKE"},
    ],
    "overallVerdict": "FAKE",
    "averageConfidence": 0.75,
    "totalFramesAnalyzed": 3,
    "fakeFramesDetected": 2,
    "realFramesDetected": 1,
}

ENRICHMENTS = {
    "temporalConsistency": {"score": 0.42, "interpretation": "Noticeable flicker around the jawline between frames."},
    "audioVisualSync": {"deviationIndex": 0.31, "observation": "Lip movement lags the audio by roughly 120 ms."},
    "detailedSummary": {
        "confidenceScore": 0.88,
        "operationalThreshold": 0.85,
        "content": "Blending artifacts and temporal flicker indicate face replacement.",
    },
}


@pytest.fixture
def payload() -> dict:
    return copy.deepcopy(BASE_PAYLOAD)


@pytest.fixture
def enriched_payload() -> dict:
    d = copy.deepcopy(BASE_PAYLOAD)
    d.update(copy.deepcopy(ENRICHMENTS))
    return d


@pytest.fixture
def report(payload) -> Report:
    return Report.model_validate(payload)


@pytest.fixture
def make_report(payload):
    def _make(report_id: str = "DFVD-20260101-120000-AAAAAA", verdict: str = "FAKE", **overrides) -> Report:
        d = copy.deepcopy(payload)
        d["reportId"] = report_id
        d["overallVerdict"] = verdict
        d.update(overrides)
        return Report.model_validate(d)

    return _make


@pytest.fixture
def clock():
    """A clock that advances one second per call."""
    state = {"t": datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)}

    def _tick() -> datetime.datetime:
        state["t"] += datetime.timedelta(seconds=1)
        return state["t"]

    return _tick


@pytest.fixture
def minter():
    """Build an identifier minter that yields the given ids in order."""

    def _build(ids: Iterable[str]):
        it = iter(ids)

        def _mint() -> str:
            return next(it)

        return _mint

    return _build


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "reports.db")


@pytest.fixture
def store(db_path, clock) -> ReportStore:
    return ReportStore(db_path=db_path, clock=clock)
