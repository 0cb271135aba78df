"""Error taxonomy for the evaluation engine."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException


@dataclass(eq=False)
class EvaluationError(Exception):
    code: str
    detail: str
    status_code: int = 400

    def __str__(self) -> str:
        return self.detail

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.detail)


class EvaluationConfigError(EvaluationError):
    def __init__(self, code: str, detail: str):
        super().__init__(code=code, detail=detail, status_code=409)


class EvaluationNotFoundError(EvaluationError):
    def __init__(self, code: str, detail: str):
        super().__init__(code=code, detail=detail, status_code=404)


class EvaluationValidationError(EvaluationError):
    def __init__(self, code: str, detail: str):
        super().__init__(code=code, detail=detail, status_code=400)


class AggregationError(EvaluationError):
    def __init__(self, metric: str, detail: str):
        super().__init__(code="aggregation_failed", detail=f"failed to aggregate {metric}: {detail}", status_code=500)
        self.metric = metric


class PersistenceError(EvaluationError):
    def __init__(self, detail: str):
        super().__init__(code="persistence_failed", detail=detail, status_code=500)


def as_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, EvaluationError):
        return exc.to_http_exception()
    if isinstance(exc, HTTPException):
        return exc
    return HTTPException(status_code=500, detail="Internal error")
