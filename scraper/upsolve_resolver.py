"""
Upsolve Resolver

Works out which problems a user should upsolve from their Codeforces contest
history:

1. the contests a handle took part in are read from the rendered
   ``/contests/with/{handle}`` page (browser session)
2. each contest's standings row for that handle is fetched from the API
3. a backward scan over the official row picks the candidates, and anything the
   user later solved out of competition is dropped

Example:
    >>> resolver = UpsolveResolver(contest_delay=2.0)
    >>> [c.question_id for c in resolver.resolve_upsolve_set("tourist")]
    ['1850_G', '1850_H']
"""

import logging
import time
from typing import Callable, List, Optional, Sequence

from scraper.base_scraper import BaseScraper, SessionFactory
from scraper.codeforces_api import CodeforcesAPI
from scraper.models import (
    ContestParticipation, ProblemRef, SubmissionSync, UpsolveCandidate, Verdict
)
from utils.error_handler import (
    NetworkError, RateLimitError, ScrapeStructureError, UpstreamApiError, error_reporter
)
from utils.rate_limiter import RateLimiter
from utils.url_parser import contest_history_url, contest_id_from_link

logger = logging.getLogger(__name__)

# Present on every Codeforces page, with or without a contest table
PAGE_CONTENT_SELECTOR = "#pageContent"
CONTEST_TABLE_SELECTOR = ".user-contests-table"
CONTEST_LINK_SELECTOR = ".user-contests-table > tbody > tr > td:nth-child(4) > a"

DEFAULT_CONTEST_DELAY = 2.0


def compute_upsolve_indices(official: Sequence[float],
                            unofficial: Optional[Sequence[float]] = None) -> List[int]:
    """
    Backward scan over one standings row.

    The first solved problem met from the end is the frontier: the problem right
    after it (if any) is a candidate, and so is every zero-point problem before it.
    Zero-point problems after the frontier are left out. Candidates solved in the
    unofficial row are removed.

    >>> compute_upsolve_indices([1, 1, 0, 0])
    [2]
    >>> compute_upsolve_indices([1, 0, 1, 0], unofficial=[0, 1, 0, 0])
    [3]
    """
    indices: List[int] = []
    solved_found = False

    for i in range(len(official) - 1, -1, -1):
        if official[i] > 0 and not solved_found:
            solved_found = True
            if i + 1 < len(official):
                indices.append(i + 1)
        elif solved_found and official[i] == 0:
            indices.append(i)

    if unofficial is not None:
        indices = [i for i in indices if not (i < len(unofficial) and unofficial[i] > 0)]

    return sorted(indices)


class UpsolveResolver(BaseScraper):
    """
    Builds the upsolve set of a handle.

    Args:
        api: Codeforces API client; shares ``rate_limiter`` when created here
        session_factory: Browser session factory used for the contest history page
        rate_limiter: Limiter for page loads and API calls
        contest_delay: Seconds to wait between two contests
        sleep: Sleep function, injectable for tests
    """

    def __init__(self, api: Optional[CodeforcesAPI] = None,
                 session_factory: Optional[SessionFactory] = None,
                 rate_limiter: Optional[RateLimiter] = None, timeout: float = 20.0,
                 contest_delay: float = DEFAULT_CONTEST_DELAY,
                 sleep: Callable[[float], None] = time.sleep):
        super().__init__(session_factory=session_factory, rate_limiter=rate_limiter, timeout=timeout)
        self.api = api or CodeforcesAPI(rate_limiter=self.rate_limiter)
        self.contest_delay = contest_delay
        self._sleep = sleep

    def fetch_contest_ids(self, handle: str) -> List[str]:
        """
        Contest ids from the handle's contest history table, in page order.

        Raises:
            ScrapeTimeoutError: If the page itself never rendered
            ScrapeStructureError: If the page has no contest table
        """
        url = contest_history_url(handle)
        soup = self.get_page_content(url, wait_for=PAGE_CONTENT_SELECTOR)

        if soup.select_one(CONTEST_TABLE_SELECTOR) is None:
            raise ScrapeStructureError(f"No contest table on {url}", url=url)

        contest_ids: List[str] = []
        for link in soup.select(CONTEST_LINK_SELECTOR):
            href = link.get("href") or ""
            try:
                contest_id = contest_id_from_link(href)
            except ValueError:
                logger.warning(f"Ignoring contest link without id: {href!r}")
                continue
            if contest_id not in contest_ids:
                contest_ids.append(contest_id)

        logger.info(f"Found {len(contest_ids)} contests for {handle}")
        return contest_ids

    def candidates_for_contest(self, contest_id: str, handle: str) -> List[UpsolveCandidate]:
        result = self.api.contest_standings(contest_id, handles=[handle], show_unofficial=True) or {}

        rows = result.get("rows") or []
        if not rows:
            logger.warning(f"No problem results for contest {contest_id}")
            return []

        problems = result.get("problems") or []
        official = ContestParticipation.from_row(contest_id, rows[0], is_official=True)
        unofficial = None
        if len(rows) > 1:
            unofficial = ContestParticipation.from_row(contest_id, rows[1], is_official=False)

        indices = compute_upsolve_indices(
            official.points, unofficial.points if unofficial is not None else None
        )

        candidates = []
        for i in indices:
            if i >= len(problems):
                logger.warning(f"Contest {contest_id} has no problem at position {i}")
                continue
            problem = problems[i]
            candidates.append(UpsolveCandidate(
                problem=ProblemRef.from_api(problem, contest_id=contest_id),
                created_at=UpsolveCandidate.timestamp(problem.get("creationTimeSeconds")),
            ))
        return candidates

    def resolve_upsolve_set(self, handle: str) -> List[UpsolveCandidate]:
        """
        Upsolve candidates across every contest of ``handle``.

        A contest whose standings call fails is logged and skipped; the
        remaining contests are still processed.

        Raises:
            ValueError: If ``handle`` is empty
            ScrapeTimeoutError: If the contest history page never rendered
            ScrapeStructureError: If the contest history page has no table
        """
        if not handle or not handle.strip():
            raise ValueError("handle must be a non-empty string")
        handle = handle.strip()

        contest_ids = self.fetch_contest_ids(handle)
        candidates: List[UpsolveCandidate] = []

        for position, contest_id in enumerate(contest_ids):
            if position:
                self._sleep(self.contest_delay)
            try:
                found = self.candidates_for_contest(contest_id, handle)
            except (UpstreamApiError, NetworkError, RateLimitError) as e:
                logger.warning(f"Failed to fetch standings for contest {contest_id}: {e}")
                error_reporter.report_error(e.error_info, {"contest_id": contest_id, "handle": handle})
                continue
            logger.debug(f"Contest {contest_id}: {len(found)} candidates")
            candidates.extend(found)

        logger.info(f"Resolved {len(candidates)} upsolve candidates for {handle}")
        return candidates

    def resolve_from_submissions(self, handle: str) -> SubmissionSync:
        """
        Reconcile the handle's submission history.

        Only the latest submission of each problem counts: a non-OK verdict makes
        the problem a candidate carrying that verdict, an OK verdict marks it solved.
        """
        submissions = self.api.user_status(handle)
        ordered = sorted(submissions, key=lambda s: s.get("creationTimeSeconds") or 0, reverse=True)

        sync = SubmissionSync()
        seen = set()
        for submission in ordered:
            problem = submission.get("problem") or {}
            if problem.get("contestId") is None or "index" not in problem:
                continue

            try:
                ref = ProblemRef.from_api(problem)
                question_id = ref.question_id
                verdict = Verdict.from_api(submission.get("verdict"))
            except ValueError as e:
                logger.warning(f"Skipping submission {submission.get('id')}: {e}")
                continue

            if question_id in seen:
                continue
            seen.add(question_id)

            if verdict is Verdict.OK:
                sync.solved_ids.append(question_id)
            else:
                sync.candidates.append(UpsolveCandidate(
                    problem=ref,
                    verdict=verdict,
                    created_at=UpsolveCandidate.timestamp(submission.get("creationTimeSeconds")),
                ))

        logger.info(f"{handle}: {len(sync.candidates)} unsolved, {len(sync.solved_ids)} solved problems")
        return sync
