"""
Client for the public Codeforces JSON API

Every call goes through the injected ``RateLimiter`` and is unwrapped from the
``{"status": ..., "result": ..., "comment": ...}`` envelope. A non-OK status or an
HTTP failure raises ``UpstreamApiError``; transport failures raise ``NetworkError``.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from scraper.browser import DEFAULT_USER_AGENT
from scraper.models import ProblemRef
from utils.error_handler import NetworkError, RateLimitError, UpstreamApiError
from utils.rate_limiter import RateLimiter
from utils.url_parser import API_URL, parse_problem_url

logger = logging.getLogger(__name__)


class CodeforcesAPI:
    """
    Thin wrapper around the ``contest.standings``, ``user.status`` and
    ``user.info`` methods.

    Args:
        rate_limiter: Limiter shared with the scrapers
        timeout: Read timeout in seconds; the connect timeout is half of it
        session: Pre-built ``requests.Session``; one with retries is created otherwise
    """

    def __init__(self, rate_limiter: Optional[RateLimiter] = None, timeout: float = 30.0,
                 session: Optional[requests.Session] = None, base_url: str = API_URL,
                 user_agent: str = DEFAULT_USER_AGENT):
        self.rate_limiter = rate_limiter or RateLimiter()
        self.timeout = timeout
        self.base_url = base_url.rstrip('/')
        self.session = session or self._build_session(user_agent)

    @staticmethod
    def _build_session(user_agent: str) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            'User-Agent': user_agent,
            'Accept': 'application/json',
            'Accept-Language': 'en-US,en;q=0.5',
            'Connection': 'keep-alive',
        })

        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[500, 502, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _call(self, method: str, params: Dict[str, Any], contest_id: Optional[str] = None) -> Any:
        return self.rate_limiter.schedule(self._request, method, params, contest_id)

    def _request(self, method: str, params: Dict[str, Any], contest_id: Optional[str]) -> Any:
        url = f"{self.base_url}/{method}"
        logger.debug(f"Calling Codeforces API {method} with {params}")

        try:
            response = self.session.get(url, params=params, timeout=(self.timeout / 2, self.timeout))
        except RequestException as e:
            raise NetworkError(f"Network error calling {method}: {str(e)}", original_exception=e, url=url)

        if response.status_code == 429:
            retry_after = response.headers.get('Retry-After')
            raise RateLimitError(
                f"Rate limited by Codeforces (HTTP 429) on {method}",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                url=url,
            )

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        status = payload.get("status")
        if response.status_code >= 400 or status != "OK":
            comment = payload.get("comment")
            detail = comment or response.reason or status or "unknown error"
            logger.error(f"Codeforces {method} failed ({response.status_code}): {detail}")
            raise UpstreamApiError(
                f"Codeforces {method} failed ({response.status_code}): {detail}",
                method=method, contest_id=contest_id, comment=comment,
                status_code=response.status_code,
            )

        return payload.get("result")

    def contest_standings(self, contest_id, handles: Optional[List[str]] = None,
                          show_unofficial: bool = True, count: Optional[int] = None) -> Dict[str, Any]:
        """
        Standings of one contest, optionally filtered to some handles.

        Returns:
            The ``result`` object: ``contest``, ``problems`` and ``rows``
        """
        params: Dict[str, Any] = {"contestId": str(contest_id)}
        if handles:
            params["handles"] = ";".join(handles)
        if show_unofficial:
            params["showUnofficial"] = "true"
        if count is not None:
            params["count"] = count
        return self._call("contest.standings", params, contest_id=str(contest_id))

    def user_status(self, handle: str) -> List[Dict[str, Any]]:
        """All submissions of ``handle``."""
        if not handle or not handle.strip():
            raise ValueError("handle must be a non-empty string")
        return self._call("user.status", {"handle": handle.strip()}) or []

    def user_info(self, handle: str) -> Dict[str, Any]:
        if not handle or not handle.strip():
            raise ValueError("handle must be a non-empty string")
        result = self._call("user.info", {"handles": handle.strip()}) or []
        if not result:
            raise UpstreamApiError(f"No user info returned for {handle}", method="user.info")
        return result[0]

    def problem_details(self, url: str) -> ProblemRef:
        """
        Look up name, rating and tags of the problem behind ``url``.

        Raises:
            InvalidUrlError: If ``url`` is not a problem URL
            UpstreamApiError: If the contest has no problem with that index
        """
        key = parse_problem_url(url)
        result = self.contest_standings(key.contest_id, show_unofficial=False, count=1) or {}

        for problem in result.get("problems", []):
            if str(problem.get("index", "")).upper() == key.index:
                return ProblemRef.from_api(problem, contest_id=key.contest_id)

        raise UpstreamApiError(
            f"Problem {key.index} not found in contest {key.contest_id}",
            method="contest.standings", contest_id=key.contest_id,
        )
