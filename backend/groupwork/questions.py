"""Static question list loaded once at startup."""

from __future__ import annotations

import json
from pathlib import Path
from urllib.parse import unquote, urlparse

from .schemas import Question


class QuestionConfigError(ValueError):
    """Raised when the question file cannot back a session."""


def resolve_questions_path(location: str | Path) -> Path:
    """Accept either a filesystem path or a ``file:`` URL."""
    if isinstance(location, Path):
        return location
    if location.startswith("file:"):
        return Path(unquote(urlparse(location).path))
    return Path(location)


def load_questions(location: str | Path) -> list[Question]:
    path = resolve_questions_path(location)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise QuestionConfigError(f"Unable to read questions from {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise QuestionConfigError(f"Questions config at {path} is not valid JSON: {exc}") from exc

    if not isinstance(data, list):
        raise QuestionConfigError("Questions config must be a JSON array.")

    questions: list[Question] = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict) or not isinstance(entry.get("id"), str) or not isinstance(entry.get("text"), str):
            raise QuestionConfigError(f"Question at index {index} must have id and text.")
        questions.append(Question(id=entry["id"], text=entry["text"]))

    if not questions:
        raise QuestionConfigError("Questions config must include at least one question.")
    return questions
