"""
URL Parser for the Codeforces Upsolve Tracker

Validates Codeforces problem URLs, builds the URLs the scrapers visit and
converts between problems and their composite storage key.

Accepted problem URL shapes:
    https://codeforces.com/problemset/problem/{contest_id}/{index}
    https://codeforces.com/contest/{contest_id}/problem/{index}
    https://codeforces.com/gym/{contest_id}/problem/{index}

Example:
    >>> parse_problem_url("https://codeforces.com/contest/1850/problem/C")
    ProblemKey(contest_id='1850', index='C')
    >>> make_question_id("1850", "C")
    '1850_C'
"""

import re
import logging
from dataclasses import dataclass
from typing import Tuple
from urllib.parse import quote

from utils.error_handler import InvalidUrlError

logger = logging.getLogger(__name__)

BASE_URL = "https://codeforces.com"
API_URL = f"{BASE_URL}/api"

# Separator of the composite "{contest_id}_{index}" key
QUESTION_ID_SEPARATOR = "_"

# Gym contests are numbered from here on and are not part of the problemset
GYM_CONTEST_MIN_ID = 100000

PROBLEM_URL_PATTERNS = [
    re.compile(
        r'^https?://(?:www\.)?codeforces\.com/problemset/problem/(\d+)/([A-Za-z][A-Za-z0-9]*)/?(?:[?#].*)?$'
    ),
    re.compile(
        r'^https?://(?:www\.)?codeforces\.com/(?:contest|gym)/(\d+)(?:/[^?#]*)?/problem/([A-Za-z][A-Za-z0-9]*)/?(?:[?#].*)?$'
    ),
]

CONTEST_ID_PATTERN = re.compile(r'/(?:contest|gym)/(\d+)')


@dataclass(frozen=True)
class ProblemKey:
    contest_id: str
    index: str

    @property
    def question_id(self) -> str:
        return make_question_id(self.contest_id, self.index)

    @property
    def link(self) -> str:
        return problem_url(self.contest_id, self.index)


def parse_problem_url(url: str) -> ProblemKey:
    """
    Extract the contest id and problem index from a problem URL.

    Raises:
        InvalidUrlError: If the URL matches neither accepted shape
    """
    if not url or not url.strip():
        raise InvalidUrlError("Empty URL provided", url)

    candidate = url.strip()
    for pattern in PROBLEM_URL_PATTERNS:
        match = pattern.match(candidate)
        if match:
            key = ProblemKey(contest_id=match.group(1), index=match.group(2).upper())
            logger.debug(f"Parsed {url} as {key.question_id}")
            return key

    raise InvalidUrlError(f"Invalid Codeforces problem URL: {url}", url)


def is_valid_problem_url(url: str) -> bool:
    try:
        parse_problem_url(url)
    except InvalidUrlError:
        return False
    return True


def make_question_id(contest_id, index: str) -> str:
    """Build the composite storage key; the separator may not appear in either part."""
    contest_id = str(contest_id).strip()
    index = str(index).strip()
    if not contest_id or not index:
        raise ValueError("contest_id and index must be non-empty")
    if QUESTION_ID_SEPARATOR in contest_id or QUESTION_ID_SEPARATOR in index:
        raise ValueError(
            f"'{QUESTION_ID_SEPARATOR}' is not allowed in contest id or index: {contest_id!r}, {index!r}"
        )
    return f"{contest_id}{QUESTION_ID_SEPARATOR}{index}"


def split_question_id(question_id: str) -> Tuple[str, str]:
    parts = question_id.split(QUESTION_ID_SEPARATOR)
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Malformed question id: {question_id!r}")
    return parts[0], parts[1]


def is_gym_contest(contest_id) -> bool:
    contest_id = str(contest_id).strip()
    return contest_id.isdigit() and int(contest_id) >= GYM_CONTEST_MIN_ID


def problem_url(contest_id, index: str) -> str:
    """
    Canonical page of a problem. Gym problems only exist under ``/gym/``.

    >>> problem_url("102001", "A")
    'https://codeforces.com/gym/102001/problem/A'
    """
    if is_gym_contest(contest_id):
        return f"{BASE_URL}/gym/{contest_id}/problem/{index}"
    return f"{BASE_URL}/problemset/problem/{contest_id}/{index}"


def question_url(question_id: str) -> str:
    return problem_url(*split_question_id(question_id))


def contest_history_url(handle: str) -> str:
    return f"{BASE_URL}/contests/with/{quote(handle, safe='')}"


def contest_id_from_link(link: str) -> str:
    """
    Contest id of a standings link such as ``/contest/1850/standings/participant/123``.
    """
    match = CONTEST_ID_PATTERN.search(link)
    if match:
        return match.group(1)
    # Fallback: the id sits four segments from the end of a participant link
    segments = link.rstrip('/').split('/')
    if len(segments) >= 4 and segments[-4].isdigit():
        return segments[-4]
    raise ValueError(f"No contest id in link: {link}")
