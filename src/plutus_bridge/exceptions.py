"""Custom exceptions used across plutus-bridge."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Budget, EvalError


class EvaluationError(RuntimeError):
    """Base class for every failure surfaced by the evaluation bridge."""


class InstantiationFailed(EvaluationError):
    """Raised when the evaluation module or its runtime cannot be set up."""


class MalformedTransaction(EvaluationError):
    """Raised when the transaction bytes cannot be decoded."""


class MissingUTxO(EvaluationError):
    """Raised when a transaction input has no resolved UTxO."""

    def __init__(self, tx_hash: str, index: int) -> None:
        super().__init__(f"missing UTxO for input: {tx_hash}#{index}")
        self.tx_hash = tx_hash
        self.index = index


class DuplicateUTxO(EvaluationError):
    """Raised when the resolved set contains the same output reference twice."""

    def __init__(self, tx_hash: str, index: int) -> None:
        super().__init__(f"duplicate UTxO in resolved set: {tx_hash}#{index}")
        self.tx_hash = tx_hash
        self.index = index


class InvalidUTxO(EvaluationError):
    """Raised when a resolved UTxO cannot be turned into a module record."""

    def __init__(self, tx_hash: str, index: int, reason: str) -> None:
        super().__init__(f"invalid UTxO {tx_hash}#{index}: {reason}")
        self.tx_hash = tx_hash
        self.index = index


class AllocationFailed(EvaluationError):
    """Raised when the guest does not return a usable allocation."""


class MemoryWriteFailed(EvaluationError):
    """Raised when a write falls outside guest linear memory."""


class MemoryReadFailed(EvaluationError):
    """Raised when a read falls outside guest linear memory."""


class CallFailed(EvaluationError):
    """Raised when an exported guest function traps or cannot be invoked."""


class EmptyEvaluationResult(EvaluationError):
    """Raised when the guest returns a result without the leading tag byte."""


class ResultDecodeFailed(EvaluationError):
    """Raised when a verdict payload cannot be decoded."""


class EvaluatorClosed(EvaluationError):
    """Raised when an evaluator is used after ``close()``."""


class ScriptEvaluationFailed(EvaluationError):
    """Semantic script failure reported by the guest.

    This is a normal outcome of evaluation rather than an operational error:
    it carries the error type, the consumed budget and the debug trace.
    """

    def __init__(self, eval_error: EvalError) -> None:
        super().__init__(f"Evaluation failed: {eval_error.error_type}")
        self.eval_error = eval_error

    @property
    def error_type(self) -> str:
        return self.eval_error.error_type

    @property
    def budget(self) -> Budget:
        return self.eval_error.budget

    @property
    def debug_trace(self) -> list[str]:
        return list(self.eval_error.debug_trace)


__all__ = [
    "AllocationFailed",
    "CallFailed",
    "DuplicateUTxO",
    "EmptyEvaluationResult",
    "EvaluationError",
    "EvaluatorClosed",
    "InstantiationFailed",
    "InvalidUTxO",
    "MalformedTransaction",
    "MemoryReadFailed",
    "MemoryWriteFailed",
    "MissingUTxO",
    "ResultDecodeFailed",
    "ScriptEvaluationFailed",
]
