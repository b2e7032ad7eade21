"""
Utils package for the Codeforces Upsolve Tracker
Contains error handling, URL parsing, rate limiting and storage helpers
"""

from .error_handler import (
    UpsolveError, ConfigurationError, ScrapeTimeoutError, ScrapeStructureError,
    UpstreamApiError, InvalidUrlError, NetworkError, RateLimitError,
    CaptchaDetectedError, StorageError, error_reporter
)
from .rate_limiter import RateLimiter
from .url_parser import parse_problem_url, make_question_id, split_question_id

__all__ = [
    'UpsolveError', 'ConfigurationError', 'ScrapeTimeoutError', 'ScrapeStructureError',
    'UpstreamApiError', 'InvalidUrlError', 'NetworkError', 'RateLimitError',
    'CaptchaDetectedError', 'StorageError', 'error_reporter',
    'RateLimiter', 'parse_problem_url', 'make_question_id', 'split_question_id',
]
