"""
JSON file storage for upsolve lists and cached problem statements

Layout of the store file::

    {
      "questions": {"1850_C": {"id": ..., "name": ..., "problemStatement": {...} | null}},
      "users": {"user-1": {"1850_C": {"questionId": ..., "verdict": ..., "bookmarked": ...}}}
    }

The question bank is shared by all users; each user's list references it by the
``{contest_id}_{index}`` key. Every write goes to a temporary file that is then
moved over the store, so readers never see a half-written file.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from scraper.models import ProblemRef, ScrapedProblemStatement, UpsolveCandidate, Verdict
from scraper.problem_extractor import SECTION_RENDERERS
from utils.error_handler import StorageError, handle_exception
from utils.url_parser import problem_url, split_question_id

logger = logging.getLogger(__name__)


class ProblemStore:
    """
    Persistent upsolve lists backed by a single JSON file.

    Args:
        path: Location of the store file; parent directories are created on save
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = threading.RLock()
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            logger.info(f"Store file {self.path} not found, starting empty")
            return {"questions": {}, "users": {}}

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read store file: {e}", path=str(self.path), original_exception=e)

        data.setdefault("questions", {})
        data.setdefault("users", {})
        return data

    @handle_exception
    def save(self) -> None:
        """Write the store atomically."""
        with self._lock:
            try:
                payload = json.dumps(self._data, indent=2, ensure_ascii=False)
            except (TypeError, ValueError) as e:
                raise StorageError(f"Store cannot be serialized to JSON: {e}", path=str(self.path),
                                   original_exception=e)

            temp_name = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, temp_name = tempfile.mkstemp(dir=str(self.path.parent), suffix='.tmp')
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    f.write(payload)
                os.replace(temp_name, self.path)
                temp_name = None
            except OSError as e:
                raise StorageError(f"Failed to write store file: {e}", path=str(self.path), original_exception=e)
            finally:
                if temp_name and os.path.exists(temp_name):
                    os.unlink(temp_name)

            logger.debug(f"Store saved to {self.path}")

    def _user_questions(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        return self._data["users"].setdefault(user_id, {})

    def _ensure_bank_entry(self, problem: ProblemRef) -> bool:
        bank = self._data["questions"]
        if problem.question_id in bank:
            return False
        record = problem.to_record()
        record["problemStatement"] = None
        bank[problem.question_id] = record
        return True

    def upsert_candidates(self, user_id: str, candidates: Iterable[UpsolveCandidate]) -> int:
        """
        Add candidates to the user's list, leaving existing entries untouched.

        Returns:
            Number of entries created
        """
        created = 0
        with self._lock:
            user_questions = self._user_questions(user_id)
            for candidate in candidates:
                self._ensure_bank_entry(candidate.problem)
                if candidate.question_id in user_questions:
                    continue
                record = candidate.to_record()
                record.pop("question")
                user_questions[candidate.question_id] = record
                created += 1
            self.save()

        logger.info(f"Added {created} questions for user {user_id}")
        return created

    def remove_questions(self, user_id: str, question_ids: Iterable[str]) -> int:
        removed = 0
        with self._lock:
            user_questions = self._user_questions(user_id)
            for question_id in question_ids:
                if user_questions.pop(question_id, None) is not None:
                    removed += 1
            if removed:
                self.save()

        logger.info(f"Removed {removed} questions for user {user_id}")
        return removed

    def add_question(self, user_id: str, problem: ProblemRef) -> Dict[str, Any]:
        """
        Manually add a bookmarked question.

        Raises:
            StorageError: If the question is already in the user's list
        """
        with self._lock:
            user_questions = self._user_questions(user_id)
            if problem.question_id in user_questions:
                raise StorageError(f"Question {problem.question_id} already exists for user {user_id}",
                                   path=str(self.path))
            candidate = UpsolveCandidate(problem=problem, verdict=Verdict.UNATTEMPTED, bookmarked=True)
            self._ensure_bank_entry(problem)
            record = candidate.to_record()
            record.pop("question")
            user_questions[problem.question_id] = record
            self.save()
        return self.get_question(user_id, problem.question_id)

    def set_bookmark(self, user_id: str, question_id: str, bookmarked: bool) -> Dict[str, Any]:
        with self._lock:
            entry = self._user_questions(user_id).get(question_id)
            if entry is None:
                raise StorageError(f"Question {question_id} not found for user {user_id}", path=str(self.path))
            entry["bookmarked"] = bool(bookmarked)
            self.save()
        return self.get_question(user_id, question_id)

    def get_question(self, user_id: str, question_id: str) -> Optional[Dict[str, Any]]:
        """User entry joined with its question bank record, or ``None``."""
        entry = self._user_questions(user_id).get(question_id)
        if entry is None:
            return None
        joined = dict(entry)
        joined["question"] = self._data["questions"].get(question_id)
        return joined

    def list_questions(self, user_id: str) -> List[Dict[str, Any]]:
        """The user's list, newest first."""
        questions = [self.get_question(user_id, qid) for qid in self._user_questions(user_id)]
        return sorted(questions, key=lambda q: q.get("createdAt") or "", reverse=True)

    def get_statement(self, question_id: str, extractor, force: bool = False) -> ScrapedProblemStatement:
        """
        Cached statement of ``question_id``, scraped through ``extractor`` on a miss.

        Nothing is stored when the scrape fails.
        """
        with self._lock:
            bank_entry = self._data["questions"].get(question_id)
            cached = bank_entry.get("problemStatement") if bank_entry else None

        if cached and not force:
            logger.debug(f"Statement cache hit for {question_id}")
            return ScrapedProblemStatement.from_dict(cached, SECTION_RENDERERS)

        statement = extractor.extract_question(question_id)

        with self._lock:
            bank_entry = self._data["questions"].get(question_id)
            if bank_entry is None:
                contest_id, index = split_question_id(question_id)
                bank_entry = ProblemRef(contest_id=contest_id, index=index).to_record()
                bank_entry["name"] = statement.title.raw
                self._data["questions"][question_id] = bank_entry
            bank_entry["problemStatement"] = statement.to_dict()
            bank_entry["statementFetchedAt"] = datetime.now(timezone.utc).isoformat()
            self.save()

        logger.info(f"Cached statement for {question_id} ({problem_url(*split_question_id(question_id))})")
        return statement
