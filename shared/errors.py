class AnalysisServiceError(Exception):
    """Base exception for the analysis service."""
    pass


class AdmissionError(AnalysisServiceError):
    """Submission rejected before it reaches the pipeline (bad extension, too large, empty)."""
    pass


class InfrastructureError(AnalysisServiceError):
    """Failure of the service itself; fatal to the request, no partial result."""
    pass


class WorkspaceError(InfrastructureError):
    """Workspace directory could not be created, populated or removed."""
    pass


class ToolTimeoutError(InfrastructureError):
    """The external tool exceeded its wall-clock time limit and was killed."""

    def __init__(self, message: str, timeout_seconds: float):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
