"""Exception types for scrape runs.

Only two kinds of failure stop a run: configuration errors, raised before
any page is fetched, and export sink errors, raised the moment a record
cannot be persisted. Fetch errors are per-URL and the driver recovers from
them by dropping the job.
"""

from typing import Any


class ArborException(Exception):
    """Base class for errors raised by the scraping engine.

    Subclasses pass a human-readable message and an optional context dict;
    the context is rendered underneath the message so log lines and CLI
    errors carry the offending path, URL or value.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable description of the failure.
            context: Optional dict of additional context (path, url, format).
        """
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message]

        if self.context:
            parts.append("Context:")
            for key, value in self.context.items():
                parts.append(f"  {key}: {value}")

        return "\n".join(parts)


class ConfigurationError(ArborException):
    """Raised when the configuration document cannot be used.

    Covers unreadable files, malformed JSON and values that fail model
    validation. Always fatal, and always raised before any work starts.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        context = {"path": path} if path is not None else None
        super().__init__(message, context)


class UnsupportedExportFormatError(ConfigurationError):
    """Raised when ``settings.export`` names a format with no sink.

    Attributes:
        export_format: The rejected format string.
        supported: The formats that do have a sink.
    """

    def __init__(self, export_format: str, supported: list[str]) -> None:
        self.export_format = export_format
        self.supported = supported
        message = (
            f'Export format "{export_format}" not supported '
            f"(expected one of: {', '.join(supported)})"
        )
        super().__init__(message)


class FetchError(ArborException):
    """Raised by a fetch backend when a page cannot be turned into a document.

    The driver logs it and drops the job; there is no retry.

    Attributes:
        url: The URL that failed.
        reason: Short description of the underlying failure.
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}", {"url": url})


class ExportSinkError(ArborException):
    """Raised when the export file cannot be read, decoded or written.

    Losing records silently is worse than stopping, so this propagates out
    of the aggregator and ends the run.
    """

    def __init__(self, message: str, path: str) -> None:
        self.path = path
        super().__init__(message, {"path": path})
