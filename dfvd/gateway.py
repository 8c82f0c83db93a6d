"""
Classification gateway - adapter around the external media classifier.

A gateway sends the uploaded bytes plus the structured-output schema to the
capability and turns whatever comes back into a validated Report. The
capability's own idea of the content fingerprint is always replaced by the one
computed here.
"""

import base64
import datetime
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import httpx

from .config import CAPABILITY_TIMEOUT, GEMINI_BASE_URL, GEMINI_MODEL, get_gemini_api_key
from .errors import (
    CapabilityConfigurationError,
    CapabilityUnavailable,
    EmptyCapabilityResponse,
    InvalidReportShape,
    MalformedCapabilityResponse,
)
from .models import Report, validate_report
from .schema import REPORT_SCHEMA, SCHEMA_VERSION
from .utils import fingerprint

logger = logging.getLogger("dfvd.gateway")

PREPARED_BY = "Gemini AI Analysis System"
TOOL_MODEL_USED = "Gemini 2.5 Pro"
ENGINE_VERSION = "2.5.0"
CLASSIFICATION_THRESHOLD = 0.85

PROBE_PROMPT = "Hello, this is a connection test. Please respond with 'Connection successful'."
PROBE_REPLY = "Connection successful"


def is_video(mime_type: str) -> bool:
    return mime_type.startswith("video/")


def _format_date(now: datetime.datetime) -> str:
    return f"{now.day} {now:%B %Y}"


def build_prompt(file_name: str, mime_type: str, content_fingerprint: str, now: Optional[datetime.datetime] = None) -> str:
    now = now or datetime.datetime.now(datetime.timezone.utc)
    video = is_video(mime_type)
    media = "video" if video else "image"
    file_format = mime_type.split("/")[-1].upper()

    if video:
        frame_instructions = "Provide frame-by-frame analysis with timestamps, confidence scores, and FAKE/REAL labels, ordered by frame number"
    else:
        frame_instructions = "Provide single frame analysis with confidence score and FAKE/REAL label"

    return f"""Analyze this {media} for deepfake detection.

IMPORTANT INSTRUCTIONS:
1. Examine the {media} carefully for signs of artificial generation or manipulation
2. Look for inconsistencies in facial features, lighting, shadows, and textures
3. For videos: Check for temporal inconsistencies, unnatural movements, and lip-sync issues
4. For images: Focus on facial artifacts, blending inconsistencies, and compression artifacts

Please provide a comprehensive deepfake analysis report with the following details:
- Generate a unique report ID (format: DFVD-YYYYMMDD-HHMMSS-XXXXXX)
- Set prepared by as "{PREPARED_BY}"
- Use today's date: {_format_date(now)}
- Tool used: "{TOOL_MODEL_USED}"
- Detection engine version: "{ENGINE_VERSION}"

Case Overview:
- Generate a case reference (format: CYB/XXXX/YYYY/)
- Source: "User Upload"
- Content type: "{"Video Content" if video else "Image Content"}"

File Metadata:
- File name: "{file_name}"
- Format: "{file_format}"
- Duration: {'"Analyze and provide duration"' if video else '"N/A"'}
- Frame rate: {'"Analyze and provide frame rate"' if video else '"N/A"'}
- Content fingerprint: "{content_fingerprint}"
- Creation date: "Estimated based on analysis"

Detection Parameters:
- Frame sampling rate: {'"1 frame/sec or appropriate rate"' if video else '"Single image analysis"'}
- Facial landmark detection: "Enabled (68-point model)"
- Audio-visual sync: {'"Enabled"' if video else '"N/A"'}
- Classification threshold: {CLASSIFICATION_THRESHOLD}

Frame Analysis:
{frame_instructions}

Summary:
- Overall verdict: FAKE/REAL/INCONCLUSIVE based on your analysis
- Average confidence score between 0 and 1
- Total frames analyzed
- Count of fake vs real frames detected

Base your analysis on actual visual inspection of the provided {media}."""


class ClassificationGateway(ABC):
    """Base class for classification capabilities."""

    name: str = "base"

    def __init__(self, schema: Optional[Dict[str, Any]] = None):
        self.schema = schema if schema is not None else REPORT_SCHEMA

    async def analyze(self, data: bytes, file_name: str, mime_type: str) -> Report:
        content_fingerprint = fingerprint(data)
        logger.info(
            f"Analyzing {file_name} ({mime_type}, {len(data)} bytes, fingerprint={content_fingerprint}) "
            f"via {self.name}, report schema v{SCHEMA_VERSION}"
        )
        prompt = build_prompt(file_name, mime_type, content_fingerprint)
        raw = await self._classify(data, file_name, mime_type, prompt)
        return self._normalize(raw, content_fingerprint)

    @abstractmethod
    async def _classify(self, data: bytes, file_name: str, mime_type: str, prompt: str) -> Optional[str]:
        """Send one classification request; return the raw JSON text or None."""

    @abstractmethod
    async def test_connection(self) -> bool:
        """Probe the capability. Never raises."""

    def _normalize(self, raw: Optional[str], content_fingerprint: str) -> Report:
        if raw is None or not raw.strip():
            logger.error(f"{self.name}: empty response from capability")
            raise EmptyCapabilityResponse("Empty response from classification capability")

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"{self.name}: response is not JSON: {e}")
            raise MalformedCapabilityResponse(f"Capability response is not valid JSON: {e}") from e

        # Whatever fingerprint the capability reported is discarded.
        if isinstance(payload, dict) and isinstance(payload.get("fileMetadata"), dict):
            payload["fileMetadata"]["contentFingerprint"] = content_fingerprint

        try:
            return validate_report(payload)
        except InvalidReportShape as e:
            logger.error(f"{self.name}: response does not match the report shape: {e}")
            raise MalformedCapabilityResponse(f"Capability response has an invalid shape ({e})", path=e.path) from e


class GeminiGateway(ClassificationGateway):
    """Gemini generateContent over REST with structured JSON output."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_BASE_URL,
        timeout: float = CAPABILITY_TIMEOUT,
        schema: Optional[Dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(schema)
        self.api_key = api_key or get_gemini_api_key()
        if not self.api_key:
            raise CapabilityConfigurationError("GEMINI_API_KEY is not configured")
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def _post(self, body: Dict[str, Any]) -> httpx.Response:
        headers = {"x-goog-api-key": self.api_key}
        if self._client is not None:
            return await self._client.post(self.endpoint, json=body, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.endpoint, json=body, headers=headers)

    async def _generate(self, parts: List[Dict[str, Any]], structured: bool) -> Optional[str]:
        body: Dict[str, Any] = {"contents": [{"parts": parts}]}
        if structured:
            body["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": self.schema,
            }

        try:
            response = await self._post(body)
        except httpx.HTTPError as e:
            raise CapabilityUnavailable(f"Classification capability unreachable: {e}") from e

        if response.status_code != 200:
            raise CapabilityUnavailable(
                f"Classification capability returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedCapabilityResponse(f"Capability envelope is not valid JSON: {e}") from e

        return _candidate_text(data)

    async def _classify(self, data: bytes, file_name: str, mime_type: str, prompt: str) -> Optional[str]:
        parts = [
            {"text": prompt},
            {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(data).decode("ascii")}},
        ]
        return await self._generate(parts, structured=True)

    async def test_connection(self) -> bool:
        try:
            text = await self._generate([{"text": PROBE_PROMPT}], structured=False)
        except Exception as e:
            logger.warning(f"Gemini connection test failed: {e}")
            return False
        return bool(text) and PROBE_REPLY in text


def _candidate_text(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    candidates = data.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
    return text or None


class FakeGateway(ClassificationGateway):
    """
    Deterministic stand-in for the capability.

    Without `raw_response` the verdict and frame scores are derived from the
    content fingerprint, so identical bytes always yield identical reports.
    """

    name = "fake"

    def __init__(
        self,
        raw_response: Optional[Union[str, Dict[str, Any]]] = None,
        reachable: bool = True,
        schema: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(schema)
        self.raw_response = raw_response
        self.reachable = reachable
        self.calls = 0

    async def _classify(self, data: bytes, file_name: str, mime_type: str, prompt: str) -> Optional[str]:
        self.calls += 1
        if self.raw_response is not None:
            if isinstance(self.raw_response, dict):
                return json.dumps(self.raw_response)
            return self.raw_response
        return json.dumps(fake_payload(data, mime_type, file_name))

    async def test_connection(self) -> bool:
        return self.reachable


def fake_payload(data: bytes, mime_type: str, file_name: str = "upload") -> Dict[str, Any]:
    digest = fingerprint(data)
    seed = bytes.fromhex(digest)
    video = is_video(mime_type)
    frame_count = 5 if video else 1

    frames = []
    for i in range(frame_count):
        confidence = round(0.5 + (seed[i] / 255) * 0.5, 3)
        frames.append({
            "frameNumber": i * 30,
            "timestamp": f"00:{i:02d}",
            "confidence": confidence,
            "label": "FAKE" if seed[i + 8] % 2 else "REAL",
        })
    fake = sum(1 for f in frames if f["label"] == "FAKE")
    real = frame_count - fake
    if fake > real:
        verdict = "FAKE"
    elif real > fake:
        verdict = "REAL"
    else:
        verdict = "INCONCLUSIVE"

    return {
        "reportId": f"DFVD-00000000-000000-{digest[:6].upper()}",
        "preparedBy": "Fake Analysis System",
        "dateOfAnalysis": "1 January 2000",
        "toolModelUsed": "fake-classifier",
        "detectionEngineVersion": "0.0.0",
        "caseOverview": {
            "caseReference": f"CYB/{digest[:4].upper()}/2000/",
            "sourceOfVideo": "User Upload",
            "suspectedContentType": "Video Content" if video else "Image Content",
        },
        "fileMetadata": {
            "fileName": file_name,
            "fileFormat": mime_type.split("/")[-1].upper(),
            "duration": "00:05" if video else "N/A",
            "frameRate": "30 fps" if video else "N/A",
            "contentFingerprint": "capability-reported",
            "dateOfFileCreation": "Estimated based on analysis",
        },
        "detectionParameters": {
            "frameSamplingRate": "1 frame/sec" if video else "Single image analysis",
            "facialLandmarkDetection": "Enabled (68-point model)",
            "audioVisualSyncCheck": "Enabled" if video else "N/A",
            "classificationThreshold": CLASSIFICATION_THRESHOLD,
        },
        "frameClassifications": frames,
        "overallVerdict": verdict,
        "averageConfidence": round(sum(f["confidence"] for f in frames) / frame_count, 3),
        "totalFramesAnalyzed": frame_count,
        "fakeFramesDetected": fake,
        "realFramesDetected": real,
    }
