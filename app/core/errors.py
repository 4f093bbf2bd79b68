# app/core/errors.py
# -----------------------------------------------------------------------------
# Engine error taxonomy
# - empty data is not an error: it is an empty AnalysisResult
# -----------------------------------------------------------------------------


class VenuescopeError(Exception):
    """Base class for analysis errors."""


class NoCachedAnalysis(VenuescopeError):
    """recompute() was called before any successful analyze()."""

    def __init__(self, message: str = "No cached analysis available for recompute."):
        super().__init__(message)


class AnalysisCancelled(VenuescopeError):
    """The computation was cancelled or superseded by a newer request."""


class UpstreamFetchFailure(VenuescopeError):
    """The POI source reported an unsuccessful search."""

    def __init__(self, error_key: str | None = None):
        self.error_key = error_key or "DataError_Unknown"
        super().__init__(self.error_key)
