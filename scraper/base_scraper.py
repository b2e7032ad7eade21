"""
Base scraper class for the Codeforces Upsolve Tracker

This module provides the plumbing shared by the browser-backed scrapers:

- a session factory producing ``BrowserSession`` objects, released on every exit path
- an injected ``RateLimiter`` that spaces outbound page loads
- text cleanup helpers used when turning DOM text into stored fields

Example:
    >>> from scraper.problem_extractor import ProblemExtractor
    >>> extractor = ProblemExtractor(rate_limiter=RateLimiter(min_interval=2.0))
    >>> statement = extractor.extract_problem("https://codeforces.com/problemset/problem/4/A")
    >>> statement.title.raw
    'A. Watermelon'

Note:
    Scrapers never create browsers themselves. Tests pass a factory returning a
    fake session that serves fixture HTML.
"""

import logging
import re
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from bs4 import BeautifulSoup

from scraper.browser import BrowserSession, BrowserSessionManager
from utils.error_handler import handle_exception
from utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# (javascript_enabled) -> a freshly acquired session
SessionFactory = Callable[[bool], BrowserSession]


class BaseScraper:
    """
    Common functionality for scrapers that drive a browser.

    Attributes:
        rate_limiter: Shared limiter that every page load goes through
        timeout: Bound, in seconds, for selector waits
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None,
                 rate_limiter: Optional[RateLimiter] = None, timeout: float = 20.0):
        self._session_factory = session_factory
        self.rate_limiter = rate_limiter or RateLimiter()
        self.timeout = timeout

    @property
    def session_factory(self) -> SessionFactory:
        # The default manager is only built when a real browser is needed
        if self._session_factory is None:
            manager = BrowserSessionManager()
            self._session_factory = lambda javascript_enabled=True: manager.acquire(
                javascript_enabled=javascript_enabled
            )
        return self._session_factory

    @contextmanager
    def browser(self, javascript_enabled: bool = True) -> Iterator[BrowserSession]:
        session = self.session_factory(javascript_enabled)
        try:
            yield session
        finally:
            session.close()

    @handle_exception
    def get_page_content(self, url: str, wait_for: Optional[str] = None,
                         javascript_enabled: bool = True) -> BeautifulSoup:
        """
        Load ``url`` in a fresh browser session and return the parsed DOM.

        The session is closed before this returns, whatever the outcome.

        Raises:
            ScrapeTimeoutError: If ``wait_for`` never appeared
            CaptchaDetectedError: If an anti-bot challenge page was served
            NetworkError: For browser automation failures
        """
        with self.browser(javascript_enabled=javascript_enabled) as session:
            soup = self.rate_limiter.schedule(
                session.load, url, wait_for=wait_for, timeout=self.timeout
            )
        logger.info(f"Successfully parsed content from: {url}")
        return soup

    @staticmethod
    def clean_text(text: str) -> str:
        """
        Normalize line endings, trim each line and collapse blank line runs.

        >>> BaseScraper.clean_text("  a \\r\\n\\n\\n b ")
        'a\\nb'
        """
        if not text:
            return ""
        text = text.replace('\r\n', '\n').replace('\r', '\n').replace('\xa0', ' ')
        text = re.sub(r'[ \t]+\n', '\n', text)
        text = re.sub(r'\n[ \t]+', '\n', text)
        text = re.sub(r'\n{2,}', '\n', text)
        return text.strip()
