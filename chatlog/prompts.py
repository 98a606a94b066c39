"""Question cards: agent input requests and ``AskUserQuestion`` tool calls."""

from __future__ import annotations

import json
import logging
from typing import Any

from ._types import Question, QuestionOption, UserInputRequest

logger = logging.getLogger(__name__)

ASK_USER_QUESTION = "askuserquestion"

# A selection is an option label, a list of labels (multi-select) or free text.
Selection = str | list[str]


def is_question_tool(name: str | None) -> bool:
    return (name or "").lower() == ASK_USER_QUESTION


def _load_json(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.debug("Question payload is not JSON: %s", value[:200])
        return None


def _parse_option(raw: Any) -> QuestionOption:
    if isinstance(raw, str):
        return QuestionOption(label=raw)
    if isinstance(raw, dict):
        return QuestionOption(
            label=str(raw.get("label") or raw.get("value") or ""),
            description=str(raw.get("description") or ""),
        )
    return QuestionOption(label=str(raw))


def _parse_options(raw: dict) -> list[QuestionOption]:
    options = raw.get("options")
    if not isinstance(options, list):
        options = raw.get("choices")
    if not isinstance(options, list):
        return []
    return [_parse_option(option) for option in options]


def _question_text(raw: dict) -> str:
    for key in ("question", "prompt", "text", "message"):
        if raw.get(key):
            return str(raw[key])
    return ""


def parse_question(raw: dict, index: int, default_id: str | None = None) -> Question:
    """Parse one question; ``index`` is 1-based and feeds the id/header defaults."""
    return Question(
        id=str(raw.get("id") or default_id or f"{ASK_USER_QUESTION}-{index}"),
        header=str(raw.get("header") or f"Question {index}"),
        question=_question_text(raw),
        options=_parse_options(raw),
        multi_select=raw.get("multiSelect") is True,
    )


def parse_tool_questions(arguments: Any) -> list[Question]:
    """Questions carried by ``AskUserQuestion`` arguments.

    Either a ``questions`` list, or a single question spread over the
    top-level arguments.
    """
    parsed = _load_json(arguments) if arguments else None
    if not isinstance(parsed, dict):
        return []
    questions = parsed.get("questions")
    if isinstance(questions, list) and questions:
        return [
            parse_question(q if isinstance(q, dict) else {"question": str(q)}, idx)
            for idx, q in enumerate(questions, start=1)
        ]
    question = parse_question(parsed, 1, default_id=ASK_USER_QUESTION)
    question.header = str(parsed.get("header") or "Question")
    return [question]


def parse_user_input_request(
    request_id: str | None, questions: Any, content: Any = None
) -> UserInputRequest:
    """Build a question card from an input request event.

    Questions come from the event itself or, failing that, from ``content``
    decoded as ``{"requestId", "questions"}`` or a bare list.
    """
    raw_questions = questions if isinstance(questions, list) else []
    if (not request_id or not raw_questions) and isinstance(content, str):
        parsed = _load_json(content)
        if isinstance(parsed, dict):
            if not request_id and isinstance(parsed.get("requestId"), str):
                request_id = parsed["requestId"]
            if not raw_questions and isinstance(parsed.get("questions"), list):
                raw_questions = parsed["questions"]
        elif isinstance(parsed, list) and not raw_questions:
            raw_questions = parsed

    return UserInputRequest(
        request_id=request_id or "",
        questions=[
            parse_question(q, idx, default_id=f"question-{idx}")
            for idx, q in enumerate(raw_questions, start=1)
            if isinstance(q, dict)
        ],
    )


def _selected_labels(selection: Selection | None) -> list[str]:
    if selection is None:
        return []
    if isinstance(selection, str):
        selection = [selection]
    return [str(item).strip() for item in selection if str(item).strip()]


def build_answers(
    request: UserInputRequest, selections: dict[str, Selection] | None = None
) -> dict[str, dict[str, list[str]]]:
    """Answer map for an input request.

    Choice questions fall back to their first option when nothing was
    selected; freeform questions are only answered with non-empty text.
    """
    selections = selections or {}
    answers: dict[str, dict[str, list[str]]] = {}
    for question in request.questions:
        chosen = _selected_labels(selections.get(question.id))
        if question.options:
            value = chosen[0] if chosen else question.options[0].label
            answers[question.id] = {"answers": [value]}
        elif chosen:
            answers[question.id] = {"answers": [chosen[0]]}
    return answers


def compose_tool_answer(
    questions: list[Question], selections: dict[str, Selection] | None = None
) -> str | None:
    """Text of the user message that answers an ``AskUserQuestion`` card.

    A single question is answered with its answer alone. Several questions
    produce ``"<label>: <answer>"`` lines, multi-select answers joined by
    ``", "``. Returns ``None`` when any question is left unanswered.
    """
    selections = selections or {}
    answers = []
    for question in questions:
        chosen = _selected_labels(selections.get(question.id))
        if not question.multi_select:
            chosen = chosen[:1]
        if not chosen:
            logger.debug("Question %s has no answer", question.id)
            return None
        answers.append(", ".join(chosen))

    if not answers:
        return None
    if len(answers) == 1:
        return answers[0]
    return "\n".join(
        f"{question.header or question.question or f'Question {idx}'}: {answer}"
        for idx, (question, answer) in enumerate(zip(questions, answers), start=1)
    )
