"""
Error Handling Module for the Codeforces Upsolve Tracker

This module provides the exception taxonomy, error detection utilities, a retry
decorator and centralized error reporting for the scraping pipeline.

Propagation policy:
- Session acquisition, timeout and structural failures propagate to the caller.
- Per-item failures inside a loop (one contest among many) are isolated by the
  caller and reported through ``error_reporter``.
"""

import logging
import time
import traceback
import functools
import socket
from typing import Dict, Any, Optional, Callable, List
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from requests.exceptions import (
    Timeout, ConnectionError, ChunkedEncodingError
)
from selenium.common.exceptions import (
    WebDriverException, TimeoutException, NoSuchElementException,
    StaleElementReferenceException, SessionNotCreatedException,
    InvalidSessionIdException
)
from urllib3.exceptions import MaxRetryError, NewConnectionError

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification"""
    CONFIGURATION = "configuration"
    SCRAPE_TIMEOUT = "scrape_timeout"
    SCRAPE_STRUCTURE = "scrape_structure"
    UPSTREAM_API = "upstream_api"
    URL_VALIDATION = "url_validation"
    NETWORK = "network"
    CAPTCHA = "captcha"
    RATE_LIMITING = "rate_limiting"
    STORAGE = "storage"
    SELENIUM = "selenium"
    UNKNOWN = "unknown"


@dataclass
class ErrorInfo:
    """Structured error information"""
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    original_exception: Optional[Exception] = None
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    traceback_str: Optional[str] = None
    recovery_suggestions: List[str] = field(default_factory=list)
    user_message: Optional[str] = None


# =============================================================================
# Custom Exception Classes
# =============================================================================

class UpsolveError(Exception):
    """Base exception for all upsolve tracker specific errors"""

    def __init__(self, message: str, error_info: Optional[ErrorInfo] = None):
        super().__init__(message)
        self.error_info = error_info or ErrorInfo(
            message=message,
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.MEDIUM
        )


class ConfigurationError(UpsolveError):
    """No working browser binary (or another fatal setup problem). Never retried."""

    def __init__(self, message: str, searched_paths: Optional[List[str]] = None):
        error_info = ErrorInfo(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            context={"searched_paths": searched_paths or []},
            recovery_suggestions=[
                "Install Google Chrome or Chromium",
                "Set CHROME_PATH to the browser executable",
                "Set CHROMIUM_PATH when running in serverless mode"
            ],
            user_message="No usable browser was found on this host."
        )
        super().__init__(message, error_info)


class ScrapeTimeoutError(UpsolveError):
    """An expected DOM element never appeared within the bounded wait"""

    def __init__(self, message: str, url: Optional[str] = None,
                 selector: Optional[str] = None,
                 original_exception: Optional[Exception] = None):
        error_info = ErrorInfo(
            message=message,
            category=ErrorCategory.SCRAPE_TIMEOUT,
            severity=ErrorSeverity.MEDIUM,
            original_exception=original_exception,
            context={"url": url, "selector": selector},
            recovery_suggestions=[
                "Try again later",
                "Check if the page loads in a regular browser"
            ],
            user_message="The page took too long to load. Please retry."
        )
        super().__init__(message, error_info)


class ScrapeStructureError(UpsolveError):
    """The page layout no longer matches the positional structure the scraper expects"""

    def __init__(self, message: str, url: Optional[str] = None,
                 found_sections: Optional[int] = None):
        error_info = ErrorInfo(
            message=message,
            category=ErrorCategory.SCRAPE_STRUCTURE,
            severity=ErrorSeverity.HIGH,
            context={"url": url, "found_sections": found_sections},
            recovery_suggestions=[
                "Verify the page is a regular problem page",
                "The upstream layout may have changed; the scraper may need updating"
            ],
            user_message="The page could not be parsed. Please retry later."
        )
        super().__init__(message, error_info)


class UpstreamApiError(UpsolveError):
    """The Codeforces API answered with a non-OK status or an HTTP failure"""

    def __init__(self, message: str, method: Optional[str] = None,
                 contest_id: Optional[str] = None, comment: Optional[str] = None,
                 status_code: Optional[int] = None):
        error_info = ErrorInfo(
            message=message,
            category=ErrorCategory.UPSTREAM_API,
            severity=ErrorSeverity.MEDIUM,
            context={
                "method": method,
                "contest_id": contest_id,
                "comment": comment,
                "status_code": status_code,
            },
            recovery_suggestions=[
                "Check that the handle and contest exist",
                "Try again after a few minutes"
            ]
        )
        super().__init__(message, error_info)
        self.contest_id = contest_id
        self.comment = comment


class InvalidUrlError(UpsolveError):
    """Problem URL matches neither accepted shape"""

    def __init__(self, message: str, url: Optional[str] = None):
        error_info = ErrorInfo(
            message=message,
            category=ErrorCategory.URL_VALIDATION,
            severity=ErrorSeverity.MEDIUM,
            context={"url": url} if url else {},
            recovery_suggestions=[
                "Use https://codeforces.com/problemset/problem/<contest>/<index>",
                "or https://codeforces.com/contest/<contest>/problem/<index>"
            ],
            user_message="Please check the problem URL format."
        )
        super().__init__(message, error_info)


class NetworkError(UpsolveError):
    """Network-related errors (timeouts, connection failures, etc.)"""

    def __init__(self, message: str, original_exception: Optional[Exception] = None,
                 url: Optional[str] = None):
        error_info = ErrorInfo(
            message=message,
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.HIGH,
            original_exception=original_exception,
            context={"url": url} if url else {},
            recovery_suggestions=[
                "Check internet connection",
                "Try again after a few minutes",
                "Check if the website is down"
            ]
        )
        super().__init__(message, error_info)


class RateLimitError(UpsolveError):
    """Rate limiting, either local (limiter busy) or from the server"""

    def __init__(self, message: str, retry_after: Optional[float] = None,
                 url: Optional[str] = None):
        error_info = ErrorInfo(
            message=message,
            category=ErrorCategory.RATE_LIMITING,
            severity=ErrorSeverity.LOW,
            context={"url": url, "retry_after": retry_after},
            recovery_suggestions=[
                f"Wait {retry_after} seconds before retrying" if retry_after else "Wait before retrying",
                "Increase delay between requests"
            ],
            user_message="Too many requests. Please wait and retry."
        )
        super().__init__(message, error_info)
        self.retry_after = retry_after


class CaptchaDetectedError(UpsolveError):
    """An anti-bot challenge page was served instead of the content"""

    def __init__(self, message: str, url: Optional[str] = None):
        error_info = ErrorInfo(
            message=message,
            category=ErrorCategory.CAPTCHA,
            severity=ErrorSeverity.HIGH,
            context={"url": url} if url else {},
            recovery_suggestions=[
                "Wait for some time before retrying",
                "Reduce scraping frequency"
            ],
            user_message="The site asked for a human check. Please try again later."
        )
        super().__init__(message, error_info)


class StorageError(UpsolveError):
    """Reading or writing the local problem store failed"""

    def __init__(self, message: str, path: Optional[str] = None,
                 original_exception: Optional[Exception] = None):
        error_info = ErrorInfo(
            message=message,
            category=ErrorCategory.STORAGE,
            severity=ErrorSeverity.HIGH,
            original_exception=original_exception,
            context={"path": path} if path else {},
            recovery_suggestions=[
                "Check file/directory permissions",
                "Ensure sufficient disk space"
            ]
        )
        super().__init__(message, error_info)


# =============================================================================
# Error Detection Utilities
# =============================================================================

class ErrorDetector:
    """Utilities for detecting specific types of errors"""

    @staticmethod
    def is_captcha_detected(content: str) -> bool:
        """Detect an anti-bot challenge in page content"""
        captcha_indicators = [
            'captcha', 'recaptcha', 'hcaptcha', 'just a moment...',
            'verify you are human', 'cf-challenge', 'challenge-platform',
            'checking your browser'
        ]
        content_lower = content.lower()
        return any(indicator in content_lower for indicator in captcha_indicators)

    @staticmethod
    def is_selenium_error(exception: Exception) -> bool:
        """Check if exception is a Selenium-related error"""
        selenium_exceptions = (
            WebDriverException, TimeoutException, NoSuchElementException,
            StaleElementReferenceException, SessionNotCreatedException,
            InvalidSessionIdException
        )
        return isinstance(exception, selenium_exceptions)


# =============================================================================
# Retry Decorator
# =============================================================================

def retry_on_error(max_attempts: int = 3, delay: float = 1.0,
                   backoff_factor: float = 2.0,
                   retryable_errors: Optional[List[type]] = None,
                   sleep: Callable[[float], None] = time.sleep):
    """
    Decorator for automatic retry on specific errors

    Args:
        max_attempts: Maximum retry attempts
        delay: Initial delay between retries (seconds)
        backoff_factor: Multiplier for delay on each retry
        retryable_errors: List of exception types to retry on.
            ``UpsolveError`` subclasses are never retried.
        sleep: Sleep function used between attempts
    """
    if retryable_errors is None:
        retryable_errors = [
            ConnectionError, Timeout, socket.timeout, socket.gaierror,
            MaxRetryError, NewConnectionError, ChunkedEncodingError,
            WebDriverException
        ]

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except UpsolveError:
                    raise
                except Exception as e:
                    last_exception = e

                    if not any(isinstance(e, error_type) for error_type in retryable_errors):
                        raise

                    if attempt == max_attempts - 1:
                        break

                    logger.warning(f"Attempt {attempt + 1}/{max_attempts} failed: {str(e)}. "
                                   f"Retrying in {current_delay} seconds...")
                    sleep(current_delay)
                    current_delay *= backoff_factor

            if last_exception:
                raise last_exception
            raise RuntimeError("All retry attempts failed but no exception was captured")

        return wrapper
    return decorator


# =============================================================================
# Error Reporting
# =============================================================================

class ErrorReporter:
    """Centralized error reporting and logging"""

    def __init__(self):
        self.error_history: List[ErrorInfo] = []

    def report_error(self, error_info: ErrorInfo, context: Optional[Dict[str, Any]] = None):
        """Report an error with full context"""
        self.error_history.append(error_info)

        if error_info.severity == ErrorSeverity.CRITICAL:
            logger.critical(f"CRITICAL ERROR: {error_info.message}")
        elif error_info.severity == ErrorSeverity.HIGH:
            logger.error(f"ERROR: {error_info.message}")
        elif error_info.severity == ErrorSeverity.MEDIUM:
            logger.warning(f"WARNING: {error_info.message}")
        else:
            logger.info(f"INFO: {error_info.message}")

        if error_info.context:
            logger.debug(f"Context: {error_info.context}")

        if context:
            logger.debug(f"Additional context: {context}")

        if error_info.traceback_str:
            logger.debug(f"Traceback: {error_info.traceback_str}")

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of all reported errors"""
        if not self.error_history:
            return {"total_errors": 0, "categories": {}, "severity_counts": {}}

        categories: Dict[str, int] = {}
        severity_counts: Dict[str, int] = {}

        for error in self.error_history:
            cat = error.category.value
            categories[cat] = categories.get(cat, 0) + 1

            sev = error.severity.value
            severity_counts[sev] = severity_counts.get(sev, 0) + 1

        return {
            "total_errors": len(self.error_history),
            "categories": categories,
            "severity_counts": severity_counts,
            "recent_errors": [
                {
                    "message": e.message,
                    "category": e.category.value,
                    "severity": e.severity.value,
                    "timestamp": e.timestamp.isoformat()
                }
                for e in self.error_history[-10:]
            ]
        }

    def clear(self) -> None:
        self.error_history.clear()


# Global error reporter instance
error_reporter = ErrorReporter()


def handle_exception(func: Callable) -> Callable:
    """Decorator to report exceptions; unexpected ones are wrapped in ``UpsolveError``"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UpsolveError as e:
            error_reporter.report_error(e.error_info)
            raise
        except Exception as e:
            error_info = ErrorInfo(
                message=f"Unexpected error in {func.__name__}: {str(e)}",
                category=ErrorCategory.SELENIUM if ErrorDetector.is_selenium_error(e) else ErrorCategory.UNKNOWN,
                severity=ErrorSeverity.MEDIUM,
                original_exception=e,
                traceback_str=traceback.format_exc()
            )
            error_reporter.report_error(error_info)
            raise UpsolveError(f"Unexpected error: {str(e)}", error_info) from e

    return wrapper
