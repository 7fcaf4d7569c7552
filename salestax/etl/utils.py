"""
Utility functions for ETL processes.

This module provides the shared pieces of the pipeline: the error taxonomy,
logging configuration, a JSON fetch helper for the rate service and the
run context that collects pipeline statistics.
"""

import json
import logging
import time
from typing import Any, Dict, Optional

import httpx
from rich.logging import RichHandler

from salestax import settings

logger = logging.getLogger("salestax")


class TaxPipelineError(Exception):
    """Base exception for pipeline-related errors."""
    pass


class InputError(TaxPipelineError):
    """Exception raised when the uploaded spreadsheet is malformed."""
    pass


class SchemaError(InputError):
    """Exception raised when the header row is not a recognized schema."""

    def __init__(self, expected: Any, received: Any, message: Optional[str] = None):
        self.expected = expected
        self.received = received
        if message is None:
            message = f"Invalid CSV header: expected {expected}, got {received}"
        super().__init__(message)


class RowFormatError(InputError):
    """Exception raised when a data row has the wrong number of fields."""
    pass


class DateFormatError(InputError):
    """Exception raised when a row's date is malformed or out of range."""
    pass


class ChargeFormatError(InputError):
    """Exception raised when a row's charge is not a number."""
    pass


class RateLookupError(TaxPipelineError):
    """Base exception for rate service errors."""
    pass


class LookupHTTPError(RateLookupError):
    """Exception raised when the rate service answers with a non-success status."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"Rate service returned status {status}: {body}")


class LookupParseError(RateLookupError):
    """Exception raised when the rate service response cannot be parsed."""
    pass


class NoRatesFoundError(RateLookupError):
    """Exception raised when a lookup yields no usable rates."""
    pass


class RateParseWarning(UserWarning):
    """Warning recorded when a single jurisdiction's rate cannot be parsed."""
    pass


def configure_logging(level: Optional[str] = None) -> None:
    """Configure console logging with rich tracebacks.

    Args:
        level: Log level name. Defaults to settings.LOG_LEVEL.
    """
    logging.basicConfig(
        level=level or settings.LOG_LEVEL,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)]
    )


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None
) -> Any:
    """Fetch a URL and decode its JSON body.

    Args:
        client: HTTP client used for the request
        url: URL to fetch
        params: Query parameters
        headers: Request headers

    Returns:
        Decoded JSON document

    Raises:
        LookupHTTPError: If the request fails or the status is not 2xx
        LookupParseError: If the body is not valid JSON
    """
    logger.debug(f"Fetching: {url} {params}")
    try:
        response = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"Rate service request error: {str(e)}")
        raise LookupHTTPError(0, str(e) or e.__class__.__name__) from e

    if not response.is_success:
        raise LookupHTTPError(response.status_code, response.text)

    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise LookupParseError(f"Failed to parse rate service response: {str(e)}") from e


class PipelineContext:
    """Context for pipeline execution."""

    def __init__(
        self,
        mode: str,
        shape: str,
        concurrency: int,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """Initialize pipeline context.

        Args:
            mode: Processing mode name
            shape: Report shape name
            concurrency: Maximum number of in-flight lookups
            metadata: Additional metadata
        """
        self.mode = mode
        self.shape = shape
        self.concurrency = concurrency
        self.metadata = metadata or {}
        self.row_count = 0
        self.processed_count = 0
        self.error_count = 0
        self.start_time = time.time()

    def get_elapsed_time(self) -> float:
        """Get elapsed time in seconds."""
        return time.time() - self.start_time

    def get_stats(self) -> Dict[str, Any]:
        """Get pipeline statistics.

        Returns:
            Dictionary of statistics
        """
        return {
            "mode": self.mode,
            "shape": self.shape,
            "concurrency": self.concurrency,
            "row_count": self.row_count,
            "processed_count": self.processed_count,
            "error_count": self.error_count,
            "elapsed_time": self.get_elapsed_time(),
            "metadata": self.metadata
        }
