# dlm_agent/ingestion/interfaces/errors.py

"""
Error handling classes for the log ingestion system.
"""


class LogIngestionError(Exception):
    """Base exception for ingestion errors."""

    pass


class SourceConnectionError(LogIngestionError):
    """Connection to source failed."""

    pass


class ConfigurationError(LogIngestionError):
    """Source specification or reader configuration is invalid."""

    pass


class SourceNotFoundError(LogIngestionError):
    """Requested log source not found."""

    pass


class SourceAlreadyRunningError(LogIngestionError):
    """Attempt to start an already running source."""

    pass


class SourceStreamError(LogIngestionError):
    """A reader's stream failed terminally after it was started."""

    def __init__(self, message: str, source_id: str | None = None) -> None:
        self.source_id = source_id
        super().__init__(message)
