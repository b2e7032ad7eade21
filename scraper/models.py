"""
Data model shared by the resolver, the extractor and the storage layer.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from utils.url_parser import make_question_id, problem_url

PLATFORM = "codeforces"


class Verdict(Enum):
    """Submission verdicts as reported by Codeforces, plus the synthetic ``Unattempted``."""
    UNATTEMPTED = "Unattempted"
    OK = "OK"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"
    COMPILATION_ERROR = "COMPILATION_ERROR"
    RUNTIME_ERROR = "RUNTIME_ERROR"
    WRONG_ANSWER = "WRONG_ANSWER"
    PRESENTATION_ERROR = "PRESENTATION_ERROR"
    TIME_LIMIT_EXCEEDED = "TIME_LIMIT_EXCEEDED"
    MEMORY_LIMIT_EXCEEDED = "MEMORY_LIMIT_EXCEEDED"
    IDLENESS_LIMIT_EXCEEDED = "IDLENESS_LIMIT_EXCEEDED"
    SECURITY_VIOLATED = "SECURITY_VIOLATED"
    CRASHED = "CRASHED"
    INPUT_PREPARATION_CRASHED = "INPUT_PREPARATION_CRASHED"
    CHALLENGED = "CHALLENGED"
    SKIPPED = "SKIPPED"
    TESTING = "TESTING"
    REJECTED = "REJECTED"

    @classmethod
    def from_api(cls, value: Optional[str]) -> "Verdict":
        # Submissions still in the queue carry no verdict yet
        if not value:
            return cls.TESTING
        return cls(value)


@dataclass
class ProblemResult:
    points: float = 0.0

    @property
    def solved(self) -> bool:
        return self.points > 0


@dataclass
class ContestParticipation:
    """One user's row in one contest's standings."""
    contest_id: str
    problem_results: List[ProblemResult]
    is_official: bool = True

    @classmethod
    def from_row(cls, contest_id: str, row: Dict[str, Any], is_official: bool) -> "ContestParticipation":
        results = [ProblemResult(points=float(r.get("points") or 0)) for r in row.get("problemResults", [])]
        return cls(contest_id=str(contest_id), problem_results=results, is_official=is_official)

    @property
    def points(self) -> List[float]:
        return [r.points for r in self.problem_results]


@dataclass
class ProblemRef:
    contest_id: str
    index: str
    name: str = ""
    rating: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    platform: str = PLATFORM

    @property
    def question_id(self) -> str:
        return make_question_id(self.contest_id, self.index)

    @property
    def link(self) -> str:
        return problem_url(self.contest_id, self.index)

    @classmethod
    def from_api(cls, problem: Dict[str, Any], contest_id: Optional[str] = None) -> "ProblemRef":
        """Build from a Codeforces ``Problem`` object."""
        rating = problem.get("rating")
        try:
            rating = int(rating) if rating is not None else None
        except (TypeError, ValueError):
            rating = None
        return cls(
            contest_id=str(contest_id if contest_id is not None else problem.get("contestId")),
            index=str(problem["index"]),
            name=problem.get("name", ""),
            rating=rating,
            tags=list(problem.get("tags") or []),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.question_id,
            "platform": self.platform,
            "name": self.name,
            "link": self.link,
            "rating": self.rating,
            "tags": list(self.tags),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UpsolveCandidate:
    problem: ProblemRef
    verdict: Verdict = Verdict.UNATTEMPTED
    bookmarked: bool = False
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def question_id(self) -> str:
        return self.problem.question_id

    @staticmethod
    def timestamp(seconds: Optional[int]) -> datetime:
        if seconds:
            return datetime.fromtimestamp(int(seconds), tz=timezone.utc)
        return _utcnow()

    def to_record(self) -> Dict[str, Any]:
        return {
            "questionId": self.question_id,
            "verdict": self.verdict.value,
            "bookmarked": self.bookmarked,
            "createdAt": self.created_at.isoformat(),
            "question": self.problem.to_record(),
        }


@dataclass
class SubmissionSync:
    """Result of reconciling a user's submission history."""
    candidates: List[UpsolveCandidate] = field(default_factory=list)
    solved_ids: List[str] = field(default_factory=list)


@dataclass
class StatementField:
    """
    One statement section: the raw text is the stored value, the HTML is derived
    from it on demand so the two variants cannot drift apart.
    """
    raw: str
    renderer: Callable[[str], str] = field(repr=False, compare=False, default=str)

    @property
    def formatted(self) -> str:
        return self.renderer(self.raw)


# attribute name -> on-record prefix of the Raw/Formatted pair
SERIALIZED_SECTIONS = (
    ("title", "title"),
    ("statement", "problemStatement"),
    ("input_statement", "inputStatement"),
    ("output_statement", "outputStatement"),
    ("examples", "examples"),
    ("note", "note"),
)


@dataclass
class ScrapedProblemStatement:
    title: StatementField
    time_limit: str
    memory_limit: str
    statement: StatementField
    input_statement: StatementField
    output_statement: StatementField
    examples: Optional[StatementField] = None
    note: Optional[StatementField] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        data: Dict[str, Optional[str]] = {}
        for attribute, prefix in SERIALIZED_SECTIONS:
            section = getattr(self, attribute)
            data[f"{prefix}Raw"] = section.raw if section is not None else None
            data[f"{prefix}Formatted"] = section.formatted if section is not None else None
        data["timeLimit"] = self.time_limit
        data["memoryLimit"] = self.memory_limit
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  renderers: Dict[str, Callable[[str], str]]) -> "ScrapedProblemStatement":
        """
        Rebuild from a serialized record. ``renderers`` maps attribute names to the
        formatter of that section.
        """
        sections: Dict[str, Optional[StatementField]] = {}
        for attribute, prefix in SERIALIZED_SECTIONS:
            raw = data.get(f"{prefix}Raw")
            renderer = renderers.get(attribute, str)
            sections[attribute] = StatementField(raw, renderer) if raw is not None else None
        for required in ("title", "statement", "input_statement", "output_statement"):
            if sections[required] is None:
                sections[required] = StatementField("", renderers.get(required, str))
        return cls(
            time_limit=data.get("timeLimit") or "",
            memory_limit=data.get("memoryLimit") or "",
            **sections,
        )
