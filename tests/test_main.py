import os, sys
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
import json

import pytest

from main import ApplicationManager, parse_arguments, write_output
from scraper.models import ProblemRef, SubmissionSync, UpsolveCandidate, Verdict
from utils.error_handler import ConfigurationError


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.delenv("UPSOLVE_ENV", raising=False)
    manager = ApplicationManager(config_dir=tmp_path / "config")
    manager._create_config_directory()
    manager._load_settings()
    manager._load_configuration()
    manager._initialize_components()
    return manager


def candidate(index):
    return UpsolveCandidate(problem=ProblemRef(contest_id="1850", index=index, name=f"Problem {index}"))


class FakeResolver:
    def __init__(self, candidates=(), sync=None):
        self.candidates = list(candidates)
        self.sync = sync

    def resolve_upsolve_set(self, handle):
        return self.candidates

    def resolve_from_submissions(self, handle):
        return self.sync


def test_parse_arguments_requires_one_command():
    with pytest.raises(SystemExit):
        parse_arguments([])
    with pytest.raises(SystemExit):
        parse_arguments(["--handle", "tourist", "--url", "https://codeforces.com/problemset/problem/4/A"])


def test_parse_arguments_options():
    args = parse_arguments(["--question-id", "4_A", "--user-id", "me", "--force", "-l", "DEBUG"])

    assert args.question_id == "4_A"
    assert args.user_id == "me"
    assert args.force
    assert args.log_level == "DEBUG"
    assert args.handle is None


def test_default_configuration_is_written(app):
    assert app.config_file.exists()
    assert app.config.getfloat('DEFAULT', 'contest_delay') == 2.0
    assert app.resolver.contest_delay == 2.0
    assert app.rate_limiter.min_interval == 2.0
    assert app.browser_config().environment == "local"


def test_environment_variable_selects_browser_environment(app, monkeypatch):
    monkeypatch.setenv("UPSOLVE_ENV", "serverless")
    assert app.browser_config().environment == "serverless"

    monkeypatch.setenv("UPSOLVE_ENV", "mainframe")
    with pytest.raises(ConfigurationError):
        app.browser_config()


def test_log_level_override_beats_saved_settings(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.json").write_text(json.dumps({"log_level": "ERROR"}), encoding="utf-8")

    manager = ApplicationManager(config_dir=config_dir, log_level="DEBUG")
    manager._load_settings()

    assert manager.settings["log_level"] == "DEBUG"


def test_resolve_handle_persists_for_user(app, tmp_path):
    app.resolver = FakeResolver(candidates=[candidate("C"), candidate("D")])
    store = app.open_store(str(tmp_path / "store.json"))

    records = app.resolve_handle("tourist", user_id="me")

    assert [r["questionId"] for r in records] == ["1850_C", "1850_D"]
    assert sorted(q["questionId"] for q in store.list_questions("me")) == ["1850_C", "1850_D"]


def test_sync_submissions_removes_solved(app, tmp_path):
    store = app.open_store(str(tmp_path / "store.json"))
    store.upsert_candidates("me", [candidate("A"), candidate("B")])
    app.resolver = FakeResolver(sync=SubmissionSync(
        candidates=[UpsolveCandidate(problem=ProblemRef(contest_id="1851", index="B"),
                                     verdict=Verdict.WRONG_ANSWER)],
        solved_ids=["1850_A"],
    ))

    result = app.sync_submissions("tourist", user_id="me")

    assert result["solved"] == ["1850_A"]
    assert sorted(q["questionId"] for q in store.list_questions("me")) == ["1850_B", "1851_B"]


def test_write_output_to_file(tmp_path):
    target = tmp_path / "out" / "result.json"
    write_output({"titleRaw": "A. Watermelon"}, str(target))

    assert json.loads(target.read_text(encoding="utf-8")) == {"titleRaw": "A. Watermelon"}
