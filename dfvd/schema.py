"""
Structured-output schema handed to the classification capability.

The capability is asked to return JSON matching this descriptor; whatever it
returns is still validated by models.validate_report() before use.
"""

from typing import Any, Dict

SCHEMA_VERSION = "2"


def _string(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


def _number(description: str) -> Dict[str, Any]:
    return {"type": "number", "description": description}


def _object(properties: Dict[str, Any], required=None) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(required if required is not None else properties),
    }


_CASE_OVERVIEW = _object({
    "caseReference": _string("Auto-generated case reference number"),
    "sourceOfVideo": _string("Source or origin of the uploaded media"),
    "suspectedContentType": _string("Type of content being analyzed"),
})

_FILE_METADATA = _object({
    "fileName": _string("Name of the uploaded file"),
    "fileFormat": _string("Format of the media file (mp4, jpg, png, etc.)"),
    "duration": _string("Duration for videos, or 'N/A' for images"),
    "frameRate": _string("Frame rate for videos, or 'N/A' for images"),
    "contentFingerprint": _string("Content fingerprint of the file for integrity verification"),
    "dateOfFileCreation": _string("Estimated creation date of the media file"),
})

_DETECTION_PARAMETERS = _object({
    "frameSamplingRate": _string("Rate at which frames were sampled for analysis"),
    "facialLandmarkDetection": _string("Status of facial landmark detection"),
    "audioVisualSyncCheck": _string("Status of audio-visual synchronization check"),
    "classificationThreshold": _number("Confidence threshold for fake classification"),
})

_FRAME = _object({
    "frameNumber": _number("Frame number in the sequence"),
    "timestamp": _string("Timestamp in MM:SS format"),
    "confidence": _number("Confidence score for this frame, 0 to 1"),
    "label": {"type": "string", "enum": ["FAKE", "REAL"], "description": "Classification label for this frame"},
})

_TEMPORAL_CONSISTENCY = _object({
    "score": _number("Temporal consistency score, 0 to 1"),
    "interpretation": _string("Interpretation of the temporal consistency score"),
})

_AUDIO_VISUAL_SYNC = _object({
    "deviationIndex": _number("Audio-visual deviation index"),
    "observation": _string("Observation about lip-sync and audio alignment"),
})

_DETAILED_SUMMARY = _object({
    "confidenceScore": _number("Model confidence, 0 to 1"),
    "operationalThreshold": _number("Operational decision threshold, 0 to 1"),
    "content": _string("Narrative summary of the findings"),
})

_REQUIRED = [
    "reportId",
    "preparedBy",
    "dateOfAnalysis",
    "toolModelUsed",
    "detectionEngineVersion",
    "caseOverview",
    "fileMetadata",
    "detectionParameters",
    "frameClassifications",
    "overallVerdict",
    "averageConfidence",
    "totalFramesAnalyzed",
    "fakeFramesDetected",
    "realFramesDetected",
]

REPORT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "reportId": _string("Unique identifier for this analysis report"),
        "preparedBy": _string("Name of the analysis system"),
        "dateOfAnalysis": _string("Current date in format: DD Month YYYY"),
        "toolModelUsed": _string("Model used for the analysis"),
        "detectionEngineVersion": _string("Version of the detection system"),
        "caseOverview": _CASE_OVERVIEW,
        "fileMetadata": _FILE_METADATA,
        "detectionParameters": _DETECTION_PARAMETERS,
        "frameClassifications": {
            "type": "array",
            "items": _FRAME,
            "description": "Frame-by-frame analysis results, ordered by frame number",
        },
        "overallVerdict": {
            "type": "string",
            "enum": ["FAKE", "REAL", "INCONCLUSIVE"],
            "description": "Overall conclusion of the analysis",
        },
        "averageConfidence": _number("Average confidence score across all analyzed frames, 0 to 1"),
        "totalFramesAnalyzed": _number("Total number of frames that were analyzed"),
        "fakeFramesDetected": _number("Number of frames classified as fake"),
        "realFramesDetected": _number("Number of frames classified as real"),
        "temporalConsistency": _TEMPORAL_CONSISTENCY,
        "audioVisualSync": _AUDIO_VISUAL_SYNC,
        "detailedSummary": _DETAILED_SUMMARY,
    },
    "required": _REQUIRED,
    "propertyOrdering": _REQUIRED + ["temporalConsistency", "audioVisualSync", "detailedSummary"],
}
