"""
Exception hierarchy for stop-list processing.
Per-delivery geocoding failures are recorded as data, not raised.
"""


class StopListError(Exception):
    """Base class for all stop-list processing errors."""


class WorkbookError(StopListError):
    """The uploaded workbook could not be read."""


class NoRoutesFoundError(StopListError):
    """A sheet was read but no routes could be extracted from it."""


class OptimizationError(StopListError):
    """Submitting or polling an optimization request failed."""


class UploadNotFoundError(StopListError):
    """A saved upload id does not exist."""

    def __init__(self, upload_id: str):
        super().__init__(f"Upload not found: {upload_id}")
        self.upload_id = upload_id
