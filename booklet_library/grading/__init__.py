"""
Grading collaborator (OpenAI-backed)

mark()  — score one student response against the memorandum
solve() — extract question text, solution and marks from page images

Failures degrade to zero / placeholder results.
"""

from .marker import MarkResult, SolveResult, mark, solve

__all__ = ["MarkResult", "SolveResult", "mark", "solve"]
