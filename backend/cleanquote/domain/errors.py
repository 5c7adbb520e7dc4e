from dataclasses import dataclass
from typing import List

PROBLEM_BASE_URI = "https://example.com/problems/"


def problem_type(slug: str) -> str:
    return PROBLEM_BASE_URI + slug


@dataclass
class DomainError(Exception):
    detail: str
    title: str = "Domain Error"
    type: str = problem_type("domain-error")
    errors: List[dict] | None = None

    def __str__(self) -> str:
        return self.detail


@dataclass
class FormulaSyntaxError(DomainError):
    title: str = "Formula Syntax Error"
    type: str = problem_type("formula-syntax-error")
    position: int | None = None


@dataclass
class EvaluationError(DomainError):
    title: str = "Formula Evaluation Error"
    type: str = problem_type("formula-evaluation-error")
