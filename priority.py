import math
import re
from datetime import date, datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel

from models import Exam, Task

EXAM_LIKE = {"exam", "test", "quiz"}

SUBJECT_KEYWORDS: Dict[str, List[str]] = {
    "math": ["math", "mathematics", "algebra", "calculus", "geometry", "statistics", "equation", "theorem", "formula"],
    "physics": ["physics", "mechanics", "dynamics", "kinematics", "electricity", "magnetism", "quantum", "relativity"],
    "chemistry": ["chemistry", "chemical", "molecule", "atom", "reaction", "compound", "acid", "base", "organic"],
    "biology": ["biology", "cell", "organism", "gene", "dna", "evolution", "ecology", "anatomy", "physiology"],
    "history": ["history", "historical", "century", "war", "revolution", "civilization", "empire", "dynasty", "era"],
    "literature": ["literature", "novel", "poem", "author", "character", "plot", "theme", "essay", "writing"],
    "programming": ["programming", "code", "algorithm", "function", "variable", "class", "object", "database", "api"],
    "language": ["language", "grammar", "vocabulary", "verb", "noun", "adjective", "pronunciation", "translation"],
}

TASK_TYPE_KEYWORDS: Dict[str, List[str]] = {
    "exam": ["exam", "test", "quiz", "midterm", "final", "assessment"],
    "assignment": ["assignment", "homework", "problem set", "worksheet", "exercise"],
    "project": ["project", "presentation", "report", "research", "investigation"],
    "reading": ["reading", "textbook", "chapter", "article", "paper", "book"],
    "writing": ["writing", "essay", "paper", "composition", "thesis", "dissertation"],
    "practice": ["practice", "review", "revision", "preparation", "study"],
}

HIGH_COMPLEXITY = ["complex", "difficult", "challenging", "advanced", "comprehensive", "in-depth"]
LOW_COMPLEXITY = ["simple", "basic", "easy", "introductory", "fundamental", "brief"]


class TaskAnalysis(BaseModel):
    subject: str = "unknown"
    task_type: str = "unknown"
    complexity: int = 3     # 1-5


def _count_matches(text: str, words: List[str], keywords: List[str]) -> int:
    # multi-word keywords match on the raw text, single words on tokens
    return sum(1 for k in keywords if (k in text if " " in k or "-" in k else k in words))


def _best_label(text: str, words: List[str], table: Dict[str, List[str]]) -> str:
    best, best_hits = "unknown", 0
    for label, keywords in table.items():
        hits = _count_matches(text, words, keywords)
        if hits > best_hits:
            best, best_hits = label, hits
    return best


def analyze_task_description(description: Optional[str]) -> TaskAnalysis:
    """Keyword classification of a task's subject, type and complexity."""
    if not description:
        return TaskAnalysis()

    text = description.lower()
    words = re.findall(r"[a-z0-9]+", text)

    high = _count_matches(text, words, HIGH_COMPLEXITY)
    low = _count_matches(text, words, LOW_COMPLEXITY)
    complexity = 3
    if high > low:
        complexity = 5 if high > 2 else 4
    elif low > high:
        complexity = 1 if low > 2 else 2

    return TaskAnalysis(
        subject=_best_label(text, words, SUBJECT_KEYWORDS),
        task_type=_best_label(text, words, TASK_TYPE_KEYWORDS),
        complexity=complexity,
    )


def calculate_priority(days_until_due: int, item_type: str = "unknown", complexity: int = 3) -> int:
    """
    1-5 priority (5 = highest) from due-date proximity, item type and complexity.

    Base 3; +2 when due within a day, +1 within three days, -1 when a week or
    more away; +1 for exam-like items; +1 for complexity >= 4; clamped to [1, 5].
    """
    priority = 3

    if days_until_due <= 1:
        priority += 2
    elif days_until_due <= 3:
        priority += 1
    elif days_until_due >= 7:
        priority -= 1

    if item_type in EXAM_LIKE:
        priority += 1

    if complexity >= 4:
        priority += 1

    return max(1, min(5, priority))


def days_until(due: Union[date, datetime], now: datetime) -> int:
    """Whole days from now until due, rounded up, never negative."""
    if not isinstance(due, datetime):
        due = datetime.combine(due, datetime.min.time())
    return max(0, math.ceil((due - now).total_seconds() / 86400))


def score_task(task: Task, now: datetime) -> int:
    analysis = analyze_task_description(task.description or task.title)
    complexity = analysis.complexity
    if task.priority.lower() == "high":
        complexity = max(complexity, 4)
    return calculate_priority(days_until(task.due_date, now), analysis.task_type, complexity)


def score_exam(exam: Exam, now: datetime) -> int:
    return calculate_priority(days_until(exam.date, now), "exam")
