import datetime
from typing import Any, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, model_validator
from pydantic.alias_generators import to_camel

from .errors import InvalidReportShape

Verdict = Literal["FAKE", "REAL", "INCONCLUSIVE"]
FrameLabel = Literal["FAKE", "REAL"]

VERDICTS: Tuple[str, ...] = ("FAKE", "REAL", "INCONCLUSIVE")

# Skip the cross-field checks inside model validation so validate_report() can
# report them with a field path.
_DEFER_INVARIANTS = "defer_invariants"


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class CaseOverview(_Model):
    case_reference: str = Field(min_length=1)
    source_of_video: str = Field(min_length=1)
    suspected_content_type: str = Field(min_length=1)


class FileMetadata(_Model):
    file_name: str = Field(min_length=1)
    file_format: str = Field(min_length=1)
    duration: str = Field(min_length=1)
    frame_rate: str = Field(min_length=1)
    content_fingerprint: str = Field(min_length=1)
    date_of_file_creation: str = Field(min_length=1)


class DetectionParameters(_Model):
    frame_sampling_rate: str = Field(min_length=1)
    facial_landmark_detection: str = Field(min_length=1)
    audio_visual_sync_check: str = Field(min_length=1)
    classification_threshold: float


class FrameClassification(_Model):
    frame_number: int = Field(ge=0)
    timestamp: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    label: FrameLabel


class TemporalConsistency(_Model):
    score: float = Field(ge=0.0, le=1.0)
    interpretation: str


class AudioVisualSync(_Model):
    deviation_index: float
    observation: str


class DetailedSummary(_Model):
    confidence_score: float
    operational_threshold: float
    content: str


class Report(_Model):
    """Canonical outcome of one classification run."""

    report_id: str = Field(min_length=1)
    prepared_by: str = Field(min_length=1)
    date_of_analysis: str = Field(min_length=1)
    tool_model_used: str = Field(min_length=1)
    detection_engine_version: str = Field(min_length=1)

    case_overview: CaseOverview
    file_metadata: FileMetadata
    detection_parameters: DetectionParameters
    frame_classifications: List[FrameClassification] = Field(default_factory=list)

    overall_verdict: Verdict
    average_confidence: float = Field(ge=0.0, le=1.0)
    total_frames_analyzed: int = Field(ge=0)
    fake_frames_detected: int = Field(ge=0)
    real_frames_detected: int = Field(ge=0)

    temporal_consistency: Optional[TemporalConsistency] = None
    audio_visual_sync: Optional[AudioVisualSync] = None
    detailed_summary: Optional[DetailedSummary] = None

    @model_validator(mode="after")
    def _check_invariants(self, info: ValidationInfo) -> "Report":
        if info.context and info.context.get(_DEFER_INVARIANTS):
            return self
        violation = invariant_violation(self)
        if violation:
            raise ValueError(f"{violation[0]}: {violation[1]}")
        return self

    def with_identifier(self, report_id: str) -> "Report":
        return self.model_copy(update={"report_id": report_id})

    def to_payload(self) -> dict:
        """JSON-ready dict using the camelCase wire names; absent enrichments are omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StoredReport(Report):
    """A Report plus the request context assigned when it was persisted."""

    created_at: datetime.datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def to_report(self) -> Report:
        return Report.model_validate(self.model_dump(exclude={"created_at", "ip_address", "user_agent"}))


def invariant_violation(report: Report) -> Optional[Tuple[str, str]]:
    """Return (field path, message) for the first cross-field rule the report breaks."""
    if report.fake_frames_detected + report.real_frames_detected > report.total_frames_analyzed:
        return (
            "fakeFramesDetected",
            "fakeFramesDetected + realFramesDetected exceeds totalFramesAnalyzed",
        )
    previous = None
    for i, frame in enumerate(report.frame_classifications):
        if previous is not None and frame.frame_number < previous:
            return (f"frameClassifications.{i}.frameNumber", "frames must be ordered by frameNumber")
        previous = frame.frame_number
    return None


def _loc_to_path(loc: Tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc)


def validate_report(candidate: Mapping[str, Any]) -> Report:
    """Validate an untrusted payload into a Report or raise InvalidReportShape."""
    if not isinstance(candidate, Mapping):
        raise InvalidReportShape("", f"expected an object, got {type(candidate).__name__}")
    try:
        report = Report.model_validate(candidate, context={_DEFER_INVARIANTS: True})
    except ValidationError as e:
        err = e.errors()[0]
        raise InvalidReportShape(_loc_to_path(err["loc"]), err["msg"]) from e

    violation = invariant_violation(report)
    if violation:
        raise InvalidReportShape(*violation)
    return report
