"""
Browser session management for the Codeforces scrapers

Launches a headless Chrome/Chromium through Selenium with baseline
anti-detection settings and guarantees that every session is released:

- a realistic desktop user agent
- ``navigator.webdriver`` patched to ``false`` before any page script runs
- sandbox flags suitable for containers
- an environment switch between a bundled minimal Chromium (serverless) and a
  local installation found through a fixed search path list

Scrapers only see the ``BrowserSession`` interface, so the fetch strategy can
be swapped (or faked in tests) without touching extraction logic.

Example:
    >>> manager = BrowserSessionManager(BrowserConfig(environment="local"))
    >>> with manager.session() as browser:
    ...     soup = browser.load("https://codeforces.com/problemset/problem/4/A",
    ...                         wait_for=".problem-statement")
"""

import functools
import logging
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait
from webdriver_manager.chrome import ChromeDriverManager

from utils.error_handler import (
    CaptchaDetectedError, ConfigurationError, ErrorDetector, NetworkError,
    ScrapeTimeoutError, retry_on_error
)

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36"
)

WEBDRIVER_PATCH_SCRIPT = "Object.defineProperty(navigator, 'webdriver', {get: () => false});"

ENVIRONMENT_LOCAL = "local"
ENVIRONMENT_SERVERLESS = "serverless"

LOCAL_BROWSER_PATHS: Tuple[str, ...] = (
    r"C:\Program Files\Google\Chrome\Application\chrome.exe",
    r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/snap/bin/chromium",
)

# Where serverless layers conventionally unpack their Chromium build
DEFAULT_BUNDLED_BINARY = "/opt/chromium/chromium"

LOCAL_ARGUMENTS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1920,1080",
)

SERVERLESS_ARGUMENTS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--disable-gpu",
    "--single-process",
    "--no-zygote",
    "--hide-scrollbars",
    "--mute-audio",
    "--window-size=1920,1080",
)

WAIT_POLL_SECONDS = 0.25


@dataclass
class BrowserConfig:
    environment: str = ENVIRONMENT_LOCAL
    headless: bool = True
    page_load_timeout: float = 30.0
    wait_timeout: float = 20.0
    user_agent: str = DEFAULT_USER_AGENT
    bundled_binary: Optional[str] = None
    search_paths: Sequence[str] = field(default_factory=lambda: LOCAL_BROWSER_PATHS)

    @classmethod
    def from_environment(cls, **overrides) -> "BrowserConfig":
        """``UPSOLVE_ENV`` selects the environment unless it is given explicitly."""
        overrides.setdefault("environment", os.environ.get("UPSOLVE_ENV", ENVIRONMENT_LOCAL))
        return cls(**overrides)

    @property
    def arguments(self) -> Sequence[str]:
        if self.environment == ENVIRONMENT_SERVERLESS:
            return SERVERLESS_ARGUMENTS
        return LOCAL_ARGUMENTS


def _is_executable(path: str) -> bool:
    return bool(path) and os.path.isfile(path) and os.access(path, os.X_OK)


@functools.lru_cache(maxsize=None)
def discover_browser_binary(environment: str, bundled_binary: Optional[str],
                            search_paths: Tuple[str, ...]) -> str:
    """
    Locate a usable browser executable. The result is cached for the lifetime
    of the process.

    Raises:
        ConfigurationError: If no candidate exists
    """
    bundled = bundled_binary or os.environ.get("CHROMIUM_PATH") or DEFAULT_BUNDLED_BINARY

    if environment == ENVIRONMENT_SERVERLESS:
        candidates = [bundled]
    else:
        candidates = list(search_paths) + [os.environ.get("CHROME_PATH", ""), bundled]

    for path in candidates:
        if _is_executable(path):
            logger.info(f"Using browser binary: {path}")
            return path

    searched = [path for path in candidates if path]
    raise ConfigurationError(
        f"No browser executable found for environment '{environment}'",
        searched_paths=searched,
    )


class BrowserSession(ABC):
    """A single exclusively owned page. Subclasses implement one fetch strategy."""

    @abstractmethod
    def load(self, url: str, wait_for: Optional[str] = None,
             timeout: Optional[float] = None) -> BeautifulSoup:
        """
        Navigate to ``url`` and return the parsed DOM.

        Raises:
            ScrapeTimeoutError: If ``wait_for`` never matched within the bound
        """

    @abstractmethod
    def close(self) -> None:
        """Release the session. Must be safe to call more than once."""

    def __enter__(self) -> "BrowserSession":
        return self

    def __exit__(self, exc_type, exc_value, exc_tb):
        self.close()
        return False


class SeleniumSession(BrowserSession):
    """Fetch strategy backed by a Selenium Chrome WebDriver."""

    def __init__(self, driver, wait_timeout: float = 20.0):
        self.driver = driver
        self.wait_timeout = wait_timeout

    def load(self, url: str, wait_for: Optional[str] = None,
             timeout: Optional[float] = None) -> BeautifulSoup:
        if self.driver is None:
            raise NetworkError("Browser session already closed", url=url)

        bound = timeout if timeout is not None else self.wait_timeout
        logger.info(f"Fetching content from: {url}")

        try:
            self.driver.get(url)
        except TimeoutException as e:
            raise ScrapeTimeoutError(f"Page load timeout for {url}", url=url,
                                     original_exception=e)
        except WebDriverException as e:
            raise NetworkError(f"Browser automation error: {str(e)}", original_exception=e, url=url)

        try:
            if wait_for:
                WebDriverWait(self.driver, bound, poll_frequency=WAIT_POLL_SECONDS).until(
                    EC.presence_of_element_located((By.CSS_SELECTOR, wait_for))
                )
            else:
                WebDriverWait(self.driver, bound, poll_frequency=WAIT_POLL_SECONDS).until(
                    lambda driver: driver.execute_script("return document.readyState") == "complete"
                )
        except TimeoutException as e:
            page_source = self._page_source()
            if ErrorDetector.is_captcha_detected(page_source):
                raise CaptchaDetectedError(f"Anti-bot challenge served for {url}", url)
            raise ScrapeTimeoutError(
                f"Timed out after {bound}s waiting for '{wait_for or 'document ready'}' on {url}",
                url=url, selector=wait_for, original_exception=e,
            )
        except WebDriverException as e:
            raise NetworkError(f"Browser automation error: {str(e)}", original_exception=e, url=url)

        return BeautifulSoup(self._page_source(), "lxml")

    def _page_source(self) -> str:
        try:
            return self.driver.page_source or ""
        except WebDriverException as e:
            logger.warning(f"Could not read page source: {e}")
            return ""

    def close(self) -> None:
        if self.driver:
            try:
                self.driver.quit()
                logger.info("WebDriver closed successfully")
            except WebDriverException as e:
                logger.warning(f"Error closing WebDriver: {e}")
            finally:
                self.driver = None


class BrowserSessionManager:
    """
    Creates browser sessions. Each call to ``acquire`` starts a fresh browser;
    sessions are never pooled or shared between calls.

    Args:
        config: Browser settings
        driver_factory: Callable building a WebDriver from ``Options``;
            defaults to Chrome with a driver from webdriver-manager
    """

    def __init__(self, config: Optional[BrowserConfig] = None,
                 driver_factory: Optional[Callable[[Options], object]] = None):
        self.config = config or BrowserConfig.from_environment()
        self.driver_factory = driver_factory or self._start_driver

    def build_options(self, binary: str, javascript_enabled: bool = True) -> Options:
        options = Options()
        options.binary_location = binary
        if self.config.headless:
            options.add_argument("--headless=new")
        for argument in self.config.arguments:
            options.add_argument(argument)
        options.add_argument(f"--user-agent={self.config.user_agent}")
        options.add_experimental_option("excludeSwitches", ["enable-automation"])
        options.add_experimental_option("useAutomationExtension", False)
        if not javascript_enabled:
            options.add_experimental_option(
                "prefs", {"profile.managed_default_content_settings.javascript": 2}
            )
        return options

    @retry_on_error(max_attempts=3, delay=2.0, retryable_errors=[WebDriverException])
    def _start_driver(self, options: Options):
        try:
            service = Service(ChromeDriverManager().install())
            return webdriver.Chrome(service=service, options=options)
        except Exception as driver_error:
            logger.warning(f"ChromeDriverManager failed: {driver_error}. Trying Selenium's driver discovery...")
            return webdriver.Chrome(options=options)

    def acquire(self, javascript_enabled: bool = True) -> SeleniumSession:
        """
        Start a browser and return its session.

        Raises:
            ConfigurationError: If no browser binary can be found (not retried)
        """
        binary = discover_browser_binary(
            self.config.environment,
            self.config.bundled_binary,
            tuple(self.config.search_paths),
        )
        options = self.build_options(binary, javascript_enabled=javascript_enabled)
        driver = self.driver_factory(options)

        try:
            driver.execute_cdp_cmd(
                "Page.addScriptToEvaluateOnNewDocument", {"source": WEBDRIVER_PATCH_SCRIPT}
            )
            driver.execute_cdp_cmd(
                "Network.setUserAgentOverride", {"userAgent": self.config.user_agent}
            )
            driver.set_page_load_timeout(self.config.page_load_timeout)
        except WebDriverException as e:
            driver.quit()
            raise NetworkError(f"Failed to configure browser session: {str(e)}", original_exception=e)

        logger.info("WebDriver setup completed successfully")
        return SeleniumSession(driver, wait_timeout=self.config.wait_timeout)

    @contextmanager
    def session(self, javascript_enabled: bool = True) -> Iterator[BrowserSession]:
        """Scoped acquisition: the session is closed on every exit path."""
        browser = self.acquire(javascript_enabled=javascript_enabled)
        try:
            yield browser
        finally:
            browser.close()
