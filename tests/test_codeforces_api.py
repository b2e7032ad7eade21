import os, sys
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from urllib.parse import parse_qs, urlparse

import pytest
import requests
import responses

from scraper.codeforces_api import CodeforcesAPI
from utils.error_handler import InvalidUrlError, NetworkError, RateLimitError, UpstreamApiError
from utils.rate_limiter import RateLimiter

STANDINGS_URL = "https://codeforces.com/api/contest.standings"
STATUS_URL = "https://codeforces.com/api/user.status"
INFO_URL = "https://codeforces.com/api/user.info"

STANDINGS = {
    "status": "OK",
    "result": {
        "contest": {"id": 1850, "name": "Codeforces Round 886 (Div. 4)"},
        "problems": [
            {"contestId": 1850, "index": "A", "name": "To My Critics", "rating": 800, "tags": ["implementation"]},
            {"contestId": 1850, "index": "C", "name": "Word on the Paper", "rating": 800, "tags": ["strings"]},
        ],
        "rows": [{"problemResults": [{"points": 1.0}, {"points": 0.0}]}],
    },
}


@pytest.fixture
def api():
    return CodeforcesAPI(rate_limiter=RateLimiter(min_interval=0), timeout=5.0)


def query(call):
    return parse_qs(urlparse(call.request.url).query)


@responses.activate
def test_contest_standings_returns_result(api):
    responses.add(responses.GET, STANDINGS_URL, json=STANDINGS, status=200)

    result = api.contest_standings("1850", handles=["tourist", "Petr"])

    assert [p["index"] for p in result["problems"]] == ["A", "C"]
    params = query(responses.calls[0])
    assert params["contestId"] == ["1850"]
    assert params["handles"] == ["tourist;Petr"]
    assert params["showUnofficial"] == ["true"]


@responses.activate
def test_failed_status_raises_with_comment(api):
    responses.add(responses.GET, STANDINGS_URL, status=400, json={
        "status": "FAILED", "comment": "contestId: Contest with id 99999 not found",
    })

    with pytest.raises(UpstreamApiError) as excinfo:
        api.contest_standings("99999")

    assert excinfo.value.contest_id == "99999"
    assert excinfo.value.comment == "contestId: Contest with id 99999 not found"


@responses.activate
def test_non_ok_status_with_http_200_raises(api):
    responses.add(responses.GET, STATUS_URL, status=200, json={"status": "FAILED", "comment": "handle: not found"})

    with pytest.raises(UpstreamApiError):
        api.user_status("nobody")


@responses.activate
def test_http_429_is_a_rate_limit_error(api):
    responses.add(responses.GET, STATUS_URL, status=429, body="Too Many Requests")

    with pytest.raises(RateLimitError):
        api.user_status("tourist")


def test_transport_failure_is_a_network_error():
    class BrokenSession:
        def get(self, url, params=None, timeout=None):
            raise requests.ConnectionError("connection refused")

    api = CodeforcesAPI(rate_limiter=RateLimiter(min_interval=0), session=BrokenSession())

    with pytest.raises(NetworkError):
        api.user_info("tourist")


@responses.activate
def test_user_status_and_info(api):
    responses.add(responses.GET, STATUS_URL, json={"status": "OK", "result": [{"id": 1, "verdict": "OK"}]})
    responses.add(responses.GET, INFO_URL, json={"status": "OK", "result": [{"handle": "tourist", "rating": 3800}]})

    assert api.user_status("tourist") == [{"id": 1, "verdict": "OK"}]
    assert api.user_info("tourist")["rating"] == 3800
    assert query(responses.calls[1])["handles"] == ["tourist"]


def test_empty_handle_is_rejected(api):
    with pytest.raises(ValueError):
        api.user_status("")


@responses.activate
def test_problem_details_looks_up_problem_in_standings(api):
    responses.add(responses.GET, STANDINGS_URL, json=STANDINGS)

    problem = api.problem_details("https://codeforces.com/contest/1850/problem/c")

    assert problem.question_id == "1850_C"
    assert problem.name == "Word on the Paper"
    assert problem.tags == ["strings"]
    params = query(responses.calls[0])
    assert params["count"] == ["1"]
    assert "showUnofficial" not in params


@responses.activate
def test_problem_details_for_unknown_index(api):
    responses.add(responses.GET, STANDINGS_URL, json=STANDINGS)

    with pytest.raises(UpstreamApiError):
        api.problem_details("https://codeforces.com/contest/1850/problem/Z")


def test_problem_details_rejects_invalid_url(api):
    with pytest.raises(InvalidUrlError):
        api.problem_details("https://codeforces.com/blog/entry/1")
