"""
Error taxonomy for the analysis report lifecycle.

InvalidInput           user-correctable, surfaced verbatim (HTTP 4xx)
CapabilityFailure      the external classifier failed or is misconfigured
PersistenceError       the report store rejected or could not perform a write/read
RenderInputIncomplete  a report is missing a field the document needs
"""

from typing import List, Optional


class DFVDError(Exception):
    """Base class for every error raised by this package."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# -----------------------------
# Input
# -----------------------------
class InvalidInput(DFVDError):
    status_code = 400


class FileTooLarge(InvalidInput):
    status_code = 413


class InvalidPageRequest(InvalidInput):
    pass


class InvalidReportShape(DFVDError):
    status_code = 422

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


# -----------------------------
# Classification capability
# -----------------------------
class CapabilityFailure(DFVDError):
    pass


class CapabilityConfigurationError(CapabilityFailure):
    pass


class CapabilityUnavailable(CapabilityFailure):
    pass


class EmptyCapabilityResponse(CapabilityFailure):
    pass


class MalformedCapabilityResponse(CapabilityFailure):
    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


# -----------------------------
# Persistence
# -----------------------------
class PersistenceError(DFVDError):
    pass


class PersistenceConflict(PersistenceError):
    status_code = 409

    def __init__(self, attempted_ids: List[str]):
        super().__init__(
            f"Report identifier collided on all {len(attempted_ids)} attempts: {', '.join(attempted_ids)}"
        )
        self.attempted_ids = list(attempted_ids)


class PersistenceUnavailable(PersistenceError):
    status_code = 503


# -----------------------------
# Rendering
# -----------------------------
class RenderInputIncomplete(DFVDError):
    status_code = 400

    def __init__(self, missing: List[str]):
        super().__init__(f"Report is missing required fields: {', '.join(missing)}")
        self.missing = list(missing)
