class UpstreamError(Exception):
    """Failure talking to an upstream HTTP API."""

    def __init__(self, message: str, *, url: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class TransientUpstreamError(UpstreamError):
    """Network error, timeout, 5xx or 429. Retried with backoff."""


class PermanentUpstreamError(UpstreamError):
    """4xx other than 429, or a body that is not JSON. Never retried."""


class PipelineAlreadyRunningError(Exception):
    pass
