"""Tests for the structured logging helpers."""

from __future__ import annotations

import logfire

from plutus_bridge.logging_utils import evaluation_span, get_structured_logger, log_structured


class _StructuredRecorder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def debug(self, message: str, /, **kwargs: object) -> None:
        self.calls.append(("debug", message, dict(kwargs)))

    def info(self, message: str, /, **kwargs: object) -> None:
        self.calls.append(("info", message, dict(kwargs)))

    def warning(self, message: str, /, **kwargs: object) -> None:
        self.calls.append(("warning", message, dict(kwargs)))

    def error(self, message: str, /, **kwargs: object) -> None:
        self.calls.append(("error", message, dict(kwargs)))


class _PositionalOnlyLogger:
    def __init__(self) -> None:
        self.messages: list[str] = []

    def _record(self, message: str, kwargs: dict[str, object]) -> None:
        if kwargs:
            raise TypeError("positional only")
        self.messages.append(message)

    def debug(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._record(message, kwargs)

    def info(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._record(message, kwargs)

    def warning(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._record(message, kwargs)

    def error(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._record(message, kwargs)


def test_log_structured_with_kwargs() -> None:
    recorder = _StructuredRecorder()
    log_structured(recorder, "warning", "dealloc failed", pointer=4096, length=12)
    assert recorder.calls == [("warning", "dealloc failed", {"pointer": 4096, "length": 12})]


def test_log_structured_falls_back_to_message() -> None:
    logger = _PositionalOnlyLogger()
    log_structured(logger, "info", "evaluation succeeded", redeemers=1)
    assert logger.messages == ["evaluation succeeded | redeemers=1"]


def test_log_structured_without_payload() -> None:
    logger = _PositionalOnlyLogger()
    log_structured(logger, "debug", "guest closed")
    assert logger.messages == ["guest closed"]


def test_get_structured_logger_defaults_to_logfire() -> None:
    recorder = _StructuredRecorder()
    assert get_structured_logger(recorder) is recorder
    assert get_structured_logger() is logfire


def test_evaluation_span_is_a_context_manager() -> None:
    with evaluation_span("plutus_bridge.test", inputs=2):
        pass
