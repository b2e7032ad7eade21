import os, sys
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from typing import Dict, List

import pytest
from bs4 import BeautifulSoup
from selenium.common.exceptions import NoSuchElementException

from scraper.browser import BrowserSession, SeleniumSession
from scraper.models import Verdict
from scraper.upsolve_resolver import UpsolveResolver, compute_upsolve_indices
from utils.error_handler import ScrapeStructureError, UpstreamApiError
from utils.rate_limiter import RateLimiter

HISTORY_HTML = """
<html><body><div id="pageContent">
<table class="user-contests-table">
  <thead><tr><th>#</th><th>Contest</th><th>Rank</th><th>Solved</th></tr></thead>
  <tbody>
    <tr><td>3</td><td>Round 3</td><td>120</td><td><a href="/contest/1852/standings/participant/77">2</a></td></tr>
    <tr><td>2</td><td>Round 2</td><td>340</td><td><a href="/contest/1851/standings/participant/77">1</a></td></tr>
    <tr><td>1</td><td>Round 1</td><td>510</td><td><a href="/contest/1850/standings/participant/77">2</a></td></tr>
  </tbody>
</table>
</div></body></html>
"""


def problems(contest_id: int, count: int) -> List[Dict]:
    return [
        {
            "contestId": contest_id,
            "index": chr(ord("A") + i),
            "name": f"Problem {chr(ord('A') + i)}",
            "rating": 800 + 100 * i,
            "tags": ["math"],
        }
        for i in range(count)
    ]


def row(*points) -> Dict:
    return {"problemResults": [{"points": p} for p in points]}


class FakeSession(BrowserSession):
    def __init__(self, html: str):
        self.html = html
        self.closed = False

    def load(self, url, wait_for=None, timeout=None):
        return BeautifulSoup(self.html, "lxml")

    def close(self):
        self.closed = True


class FakeAPI:
    def __init__(self, standings=None, submissions=None, failing=()):
        self.standings = standings or {}
        self.submissions = submissions or []
        self.failing = set(failing)
        self.standings_calls = []

    def contest_standings(self, contest_id, handles=None, show_unofficial=True, count=None):
        self.standings_calls.append((contest_id, tuple(handles or ()), show_unofficial))
        if contest_id in self.failing:
            raise UpstreamApiError("contestId: Contest not found", method="contest.standings",
                                   contest_id=contest_id)
        return self.standings.get(contest_id, {"problems": [], "rows": []})

    def user_status(self, handle):
        return self.submissions


def make_resolver(api, html=HISTORY_HTML, sleeps=None):
    sessions = []

    def factory(javascript_enabled=True):
        session = FakeSession(html)
        sessions.append(session)
        return session

    resolver = UpsolveResolver(
        api=api,
        session_factory=factory,
        rate_limiter=RateLimiter(min_interval=0),
        contest_delay=2.0,
        sleep=sleeps.append if sleeps is not None else (lambda seconds: None),
    )
    return resolver, sessions


class TestComputeUpsolveIndices:
    def test_all_zero_row_has_no_candidates(self):
        assert compute_upsolve_indices([0, 0, 0, 0]) == []

    def test_problem_after_frontier_is_a_candidate(self):
        assert compute_upsolve_indices([1, 1, 0, 0]) == [2]

    def test_zero_point_problems_after_next_are_excluded(self):
        assert compute_upsolve_indices([1, 0, 0, 0, 0]) == [1]

    def test_everything_solved_has_no_candidates(self):
        assert compute_upsolve_indices([1, 1, 1]) == []

    def test_unsolved_problems_below_frontier_are_candidates(self):
        assert compute_upsolve_indices([1, 0, 1, 0]) == [1, 3]

    def test_only_last_problem_solved(self):
        # Nothing follows the frontier; every earlier zero is kept
        assert compute_upsolve_indices([0, 0, 0, 1]) == [0, 1, 2]

    def test_unofficial_solves_remove_candidates(self):
        assert compute_upsolve_indices([1, 0, 1, 0], unofficial=[0, 1, 0, 0]) == [3]
        assert compute_upsolve_indices([1, 1, 0, 0], unofficial=[1, 1, 1, 0]) == []

    def test_partial_points_count_as_solved(self):
        assert compute_upsolve_indices([500, 0.5, 0]) == [2]

    def test_empty_row(self):
        assert compute_upsolve_indices([]) == []


def test_fetch_contest_ids_reads_history_table():
    resolver, sessions = make_resolver(FakeAPI())

    assert resolver.fetch_contest_ids("tourist") == ["1852", "1851", "1850"]
    assert sessions[0].closed


def test_fetch_contest_ids_without_table_is_a_structure_error():
    resolver, _ = make_resolver(FakeAPI(), html="<html><body><p>No contests</p></body></html>")

    with pytest.raises(ScrapeStructureError):
        resolver.fetch_contest_ids("tourist")


class PageDriver:
    """Stands in for a WebDriver: only ``present`` selectors are found."""

    def __init__(self, page_source, present=("#pageContent",)):
        self.page_source = page_source
        self.present = set(present)
        self.looked_up = []

    def get(self, url):
        pass

    def find_element(self, by, value):
        self.looked_up.append(value)
        if value not in self.present:
            raise NoSuchElementException(f"no element {value}")
        return object()

    def quit(self):
        pass


def make_selenium_resolver(driver):
    return UpsolveResolver(
        api=FakeAPI(),
        session_factory=lambda javascript_enabled=True: SeleniumSession(driver, wait_timeout=0.3),
        rate_limiter=RateLimiter(min_interval=0),
        timeout=0.3,
    )


def test_history_without_table_in_browser_is_a_structure_error():
    driver = PageDriver("<html><body><div id='pageContent'><p>No contests yet</p></div></body></html>")

    with pytest.raises(ScrapeStructureError):
        make_selenium_resolver(driver).fetch_contest_ids("nobody")

    assert ".user-contests-table" not in driver.looked_up


def test_history_table_in_browser_is_read():
    driver = PageDriver(HISTORY_HTML)

    assert make_selenium_resolver(driver).fetch_contest_ids("tourist") == ["1852", "1851", "1850"]


def test_candidates_for_contest_are_enriched_from_standings():
    api = FakeAPI(standings={
        "1850": {"problems": problems(1850, 4), "rows": [row(1, 1, 0, 0)]},
    })
    resolver, _ = make_resolver(api)

    candidates = resolver.candidates_for_contest("1850", "tourist")

    assert [c.question_id for c in candidates] == ["1850_C"]
    candidate = candidates[0]
    assert candidate.verdict is Verdict.UNATTEMPTED
    assert candidate.problem.name == "Problem C"
    assert candidate.problem.rating == 1000
    assert candidate.problem.link == "https://codeforces.com/problemset/problem/1850/C"
    assert api.standings_calls == [("1850", ("tourist",), True)]


def test_candidates_for_contest_uses_unofficial_row():
    api = FakeAPI(standings={
        "1850": {"problems": problems(1850, 4), "rows": [row(1, 0, 1, 0), row(0, 1, 0, 0)]},
    })
    resolver, _ = make_resolver(api)

    assert [c.question_id for c in resolver.candidates_for_contest("1850", "tourist")] == ["1850_D"]


def test_candidates_for_contest_without_rows():
    api = FakeAPI(standings={"1850": {"problems": problems(1850, 3), "rows": []}})
    resolver, _ = make_resolver(api)

    assert resolver.candidates_for_contest("1850", "tourist") == []


def test_resolve_upsolve_set_sleeps_between_contests():
    api = FakeAPI(standings={
        "1852": {"problems": problems(1852, 3), "rows": [row(1, 0, 0)]},
        "1851": {"problems": problems(1851, 3), "rows": [row(0, 0, 0)]},
        "1850": {"problems": problems(1850, 4), "rows": [row(1, 1, 0, 0)]},
    })
    sleeps = []
    resolver, _ = make_resolver(api, sleeps=sleeps)

    candidates = resolver.resolve_upsolve_set("tourist")

    assert [c.question_id for c in candidates] == ["1852_B", "1850_C"]
    assert sleeps == [2.0, 2.0]


def test_failing_contest_is_skipped():
    api = FakeAPI(
        standings={
            "1852": {"problems": problems(1852, 3), "rows": [row(1, 0, 0)]},
            "1850": {"problems": problems(1850, 4), "rows": [row(1, 1, 0, 0)]},
        },
        failing={"1851"},
    )
    resolver, _ = make_resolver(api)

    candidates = resolver.resolve_upsolve_set("tourist")

    assert [c.question_id for c in candidates] == ["1852_B", "1850_C"]
    assert [call[0] for call in api.standings_calls] == ["1852", "1851", "1850"]


def test_resolving_twice_gives_the_same_candidates():
    api = FakeAPI(standings={
        "1850": {"problems": problems(1850, 4), "rows": [row(1, 1, 0, 0)]},
    })
    resolver, _ = make_resolver(api)

    first = [c.question_id for c in resolver.resolve_upsolve_set("tourist")]
    second = [c.question_id for c in resolver.resolve_upsolve_set("tourist")]

    assert first == second == ["1850_C"]


def test_resolve_upsolve_set_rejects_empty_handle():
    resolver, sessions = make_resolver(FakeAPI())

    with pytest.raises(ValueError):
        resolver.resolve_upsolve_set("  ")
    assert sessions == []


def test_resolve_from_submissions_keeps_latest_verdict_per_problem():
    submissions = [
        {"id": 1, "creationTimeSeconds": 100, "verdict": "WRONG_ANSWER",
         "problem": {"contestId": 1850, "index": "C", "name": "Word"}},
        {"id": 2, "creationTimeSeconds": 200, "verdict": "OK",
         "problem": {"contestId": 1850, "index": "C", "name": "Word"}},
        {"id": 3, "creationTimeSeconds": 300, "verdict": "TIME_LIMIT_EXCEEDED",
         "problem": {"contestId": 1851, "index": "B", "name": "Parity", "rating": 1200}},
        {"id": 4, "creationTimeSeconds": 250, "verdict": "OK",
         "problem": {"contestId": 1851, "index": "B", "name": "Parity", "rating": 1200}},
        {"id": 5, "creationTimeSeconds": 400, "verdict": "WRONG_ANSWER",
         "problem": {"problemsetName": "acmsguru", "index": "100", "name": "A+B"}},
    ]
    resolver, _ = make_resolver(FakeAPI(submissions=submissions))

    sync = resolver.resolve_from_submissions("tourist")

    assert sync.solved_ids == ["1850_C"]
    assert [c.question_id for c in sync.candidates] == ["1851_B"]
    candidate = sync.candidates[0]
    assert candidate.verdict is Verdict.TIME_LIMIT_EXCEEDED
    assert candidate.created_at.timestamp() == 300
    assert candidate.problem.rating == 1200
