"""
AI grading adapter

Implements the grading collaborator contract:
  mark(question_text, reference_solution, student_response, max_marks, image)
      → MarkResult(score, max_score, feedback)
  solve(images, question_number)
      → SolveResult(question_text, solution, marks, difficulty)

Both calls may fail (no key, network, unparseable reply). Failures never
propagate: mark() returns a zero score and solve() a placeholder result.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import json_repair
from pydantic import BaseModel

from booklet_library.database.schemas import Difficulty
from booklet_library.grading.gpt_client import call_gpt

log = logging.getLogger(__name__)


class MarkResult(BaseModel):
    score: float
    max_score: float
    feedback: str
    failed: bool = False


class SolveResult(BaseModel):
    question_text: str
    solution: Optional[str] = None
    marks: int = 0
    difficulty: str = Difficulty.LEVEL_2.value
    error: Optional[str] = None


MARK_PROMPT = """\
Grade this student's answer out of {max_marks}.

Question: {question_text}
Memorandum: {reference_solution}
Student Submission: {student_response}

Respond with JSON ONLY:
{{"score": <number>, "maxScore": {max_marks}, "feedback": "<short feedback for the student>"}}"""

SOLVE_PROMPT = """\
Analyze this exam question image(s). This is Question {question_number}.

1. Extract all text accurately.
2. Solve the problem completely. Use LaTeX for math ($...$).
3. Determine the mark allocation (usually in brackets at the end).
4. Categorize difficulty (Knowledge, Routine, Complex, Problem Solving).

Respond with JSON ONLY:
{{"questionText": "...", "solution": "...", "totalMarks": <int>, "difficulty": "..."}}"""


def _extract_json(raw: str) -> Dict[str, Any]:
    """Extract + repair a JSON object from a model reply."""
    raw = raw.strip()
    raw = re.sub(r"^```(?:json)?\s*", "", raw, flags=re.MULTILINE)
    raw = re.sub(r"\s*```$", "", raw, flags=re.MULTILINE)
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start == -1 or end == 0:
        raise ValueError(f"No JSON object in model reply: {raw[:300]}")
    data = json_repair.loads(raw[start:end])
    if not isinstance(data, dict):
        raise ValueError("Model reply is not a JSON object")
    return data


def clamp_score(score: Any, max_marks: float) -> float:
    try:
        value = float(score)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(value, float(max_marks)))


async def mark(
    question_text: str,
    reference_solution: Optional[str],
    student_response: str,
    max_marks: float,
    image: Optional[str] = None,
) -> MarkResult:
    prompt = MARK_PROMPT.format(
        max_marks=max_marks,
        question_text=question_text[:4000],
        reference_solution=(reference_solution or "(none provided)")[:4000],
        student_response=(student_response or "(no written response)")[:4000],
    )
    try:
        raw = await call_gpt(prompt, images=[image] if image else None)
        data = _extract_json(raw)
        return MarkResult(
            score=clamp_score(data.get("score"), max_marks),
            max_score=float(max_marks),
            feedback=str(data.get("feedback") or ""),
        )
    except Exception as e:
        log.warning("AI marking failed: %s", e)
        return MarkResult(score=0.0, max_score=float(max_marks), feedback="AI Marking unavailable.", failed=True)


async def solve(images: List[str], question_number: int) -> SolveResult:
    try:
        raw = await call_gpt(
            SOLVE_PROMPT.format(question_number=question_number),
            images=images,
            max_tokens=2048,
        )
        data = _extract_json(raw)
        return SolveResult(
            question_text=str(data.get("questionText") or "Extraction failed."),
            solution=data.get("solution") or None,
            marks=int(data.get("totalMarks") or 0),
            difficulty=str(data.get("difficulty") or Difficulty.LEVEL_2.value),
        )
    except Exception as e:
        log.warning("AI solve failed for question %s: %s", question_number, e)
        return SolveResult(
            question_text="Processing Error",
            solution=f"System could not process: {e}",
            marks=0,
            difficulty=Difficulty.LEVEL_1.value,
            error=str(e),
        )
