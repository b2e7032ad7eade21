import os, sys
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
import json

import pytest

from scraper.models import ProblemRef, ScrapedProblemStatement, StatementField, UpsolveCandidate, Verdict
from utils.error_handler import ScrapeTimeoutError, StorageError
from utils.problem_store import ProblemStore


def make_candidate(contest_id="1850", index="C", verdict=Verdict.UNATTEMPTED):
    return UpsolveCandidate(
        problem=ProblemRef(contest_id=contest_id, index=index, name=f"Problem {index}", rating=1200),
        verdict=verdict,
        created_at=UpsolveCandidate.timestamp(1_690_000_000),
    )


def make_statement(title="C. Word on the Paper"):
    return ScrapedProblemStatement(
        title=StatementField(title),
        time_limit="1 second",
        memory_limit="256 megabytes",
        statement=StatementField("<p>Read the word.</p>"),
        input_statement=StatementField("An 8x8 grid."),
        output_statement=StatementField("The word."),
    )


class FakeExtractor:
    def __init__(self, statement=None, error=None):
        self.statement = statement or make_statement()
        self.error = error
        self.calls = []

    def extract_question(self, question_id):
        self.calls.append(question_id)
        if self.error is not None:
            raise self.error
        return self.statement


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "data" / "store.json"


def test_upsert_is_idempotent(store_path):
    store = ProblemStore(store_path)
    candidates = [make_candidate(index="C"), make_candidate(index="D")]

    assert store.upsert_candidates("user-1", candidates) == 2
    assert store.upsert_candidates("user-1", candidates) == 0

    data = json.loads(store_path.read_text(encoding="utf-8"))
    assert sorted(data["users"]["user-1"]) == ["1850_C", "1850_D"]
    assert sorted(data["questions"]) == ["1850_C", "1850_D"]


def test_upsert_keeps_existing_entries_untouched(store_path):
    store = ProblemStore(store_path)
    store.upsert_candidates("user-1", [make_candidate()])
    store.set_bookmark("user-1", "1850_C", True)

    store.upsert_candidates("user-1", [make_candidate(verdict=Verdict.WRONG_ANSWER)])

    entry = store.get_question("user-1", "1850_C")
    assert entry["bookmarked"] is True
    assert entry["verdict"] == "Unattempted"


def test_question_bank_is_shared_between_users(store_path):
    store = ProblemStore(store_path)
    store.upsert_candidates("user-1", [make_candidate()])
    store.upsert_candidates("user-2", [make_candidate()])

    reloaded = ProblemStore(store_path)
    assert reloaded.get_question("user-2", "1850_C")["question"]["name"] == "Problem C"
    assert len(reloaded.list_questions("user-1")) == 1


def test_remove_questions(store_path):
    store = ProblemStore(store_path)
    store.upsert_candidates("user-1", [make_candidate(index="C"), make_candidate(index="D")])

    assert store.remove_questions("user-1", ["1850_C", "1850_Z"]) == 1
    assert [q["questionId"] for q in store.list_questions("user-1")] == ["1850_D"]


def test_add_question_twice_raises(store_path):
    store = ProblemStore(store_path)
    problem = ProblemRef(contest_id="4", index="A", name="Watermelon", rating=800)

    entry = store.add_question("user-1", problem)
    assert entry["bookmarked"] is True
    assert entry["verdict"] == "Unattempted"

    with pytest.raises(StorageError):
        store.add_question("user-1", problem)


def test_set_bookmark_on_missing_question_raises(store_path):
    with pytest.raises(StorageError):
        ProblemStore(store_path).set_bookmark("user-1", "1_A", True)


def test_list_questions_newest_first(store_path):
    store = ProblemStore(store_path)
    older = make_candidate(index="A")
    newer = make_candidate(index="B")
    newer.created_at = UpsolveCandidate.timestamp(1_700_000_000)
    store.upsert_candidates("user-1", [older, newer])

    assert [q["questionId"] for q in store.list_questions("user-1")] == ["1850_B", "1850_A"]


def test_empty_user_id_is_rejected(store_path):
    with pytest.raises(ValueError):
        ProblemStore(store_path).upsert_candidates("", [make_candidate()])


def test_corrupt_store_file_raises(store_path):
    store_path.parent.mkdir(parents=True)
    store_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StorageError):
        ProblemStore(store_path)


def test_get_statement_scrapes_once_then_serves_cache(store_path):
    store = ProblemStore(store_path)
    store.upsert_candidates("user-1", [make_candidate()])
    extractor = FakeExtractor()

    first = store.get_statement("1850_C", extractor)
    second = store.get_statement("1850_C", extractor)

    assert extractor.calls == ["1850_C"]
    assert first.title.raw == second.title.raw == "C. Word on the Paper"
    assert second.time_limit == "1 second"
    assert second.note is None

    data = json.loads(store_path.read_text(encoding="utf-8"))
    cached = data["questions"]["1850_C"]["problemStatement"]
    assert cached["titleRaw"] == "C. Word on the Paper"
    assert "statementFetchedAt" in data["questions"]["1850_C"]


def test_get_statement_force_rescrapes(store_path):
    store = ProblemStore(store_path)
    store.get_statement("1850_C", FakeExtractor())

    fresh = FakeExtractor(make_statement(title="C. Word on the Paper (updated)"))
    statement = store.get_statement("1850_C", fresh, force=True)

    assert fresh.calls == ["1850_C"]
    assert statement.title.raw == "C. Word on the Paper (updated)"


def test_get_statement_creates_bank_entry_for_unknown_question(store_path):
    store = ProblemStore(store_path)
    store.get_statement("4_A", FakeExtractor(make_statement(title="A. Watermelon")))

    data = json.loads(store_path.read_text(encoding="utf-8"))
    assert data["questions"]["4_A"]["name"] == "A. Watermelon"
    assert data["questions"]["4_A"]["link"] == "https://codeforces.com/problemset/problem/4/A"


def test_failed_scrape_stores_nothing(store_path):
    store = ProblemStore(store_path)
    store.upsert_candidates("user-1", [make_candidate()])
    before = store_path.read_text(encoding="utf-8")

    with pytest.raises(ScrapeTimeoutError):
        store.get_statement("1850_C", FakeExtractor(error=ScrapeTimeoutError("timed out")))

    assert store_path.read_text(encoding="utf-8") == before
    assert store.get_question("user-1", "1850_C")["question"]["problemStatement"] is None


def test_gym_statement_is_scraped_from_gym_page(store_path):
    store = ProblemStore(store_path)
    extractor = FakeExtractor(make_statement(title="A. Gym Warmup"))

    store.get_statement("102001_A", extractor)

    data = json.loads(store_path.read_text(encoding="utf-8"))
    assert data["questions"]["102001_A"]["link"] == "https://codeforces.com/gym/102001/problem/A"
