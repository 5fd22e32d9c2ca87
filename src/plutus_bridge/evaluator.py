"""Phase-two evaluation through the sandboxed evaluation module."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from contextlib import ExitStack
from types import TracebackType

from pycardano import UTxO

from .codec import encode_resolved_utxo, frame_utxo_records
from .config import EvaluatorConfig
from .context import UTxOIndex, build_context, parse_transaction
from .exceptions import (
    EvaluatorClosed,
    InstantiationFailed,
    ScriptEvaluationFailed,
)
from .logging_utils import (
    StructuredLogger,
    evaluation_span,
    get_structured_logger,
    log_structured,
)
from .memory import REQUIRED_EXPORTS, CleanupFailure, Guest, GuestMemory, WasmtimeGuest
from .models import Failure, ResolvedUTxO, Success, Verdict
from .verdict import decode_verdict


class Evaluator:
    """Owns one evaluation module instance and runs phase-two evaluation on it.

    Calls on the same instance are serialized; use one evaluator per worker
    to evaluate in parallel.
    """

    def __init__(
        self,
        config: EvaluatorConfig,
        *,
        guest: Guest | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Create an evaluator.

        Args:
            config: Module source, cost models, budget and chain time reference.
            guest: Already loaded module instance. When None the module named
                by ``config`` is instantiated with wasmtime.
            logger: Structured logger; defaults to logfire.
        """
        self._config = config
        self._logger = get_structured_logger(logger)
        if guest is None:
            guest = WasmtimeGuest.from_bytes(config.load_module_bytes())
        missing = [name for name in REQUIRED_EXPORTS if not guest.has_export(name)]
        if missing:
            guest.close()
            raise InstantiationFailed(f"module is missing exports: {', '.join(missing)}")
        self._guest = guest
        self._memory = GuestMemory(guest, logger=self._logger)
        self._lock = threading.Lock()
        self._closed = False
        log_structured(
            self._logger,
            "info",
            "Evaluator ready",
            max_tx_ex_steps=config.max_tx_ex_steps,
            max_tx_ex_mem=config.max_tx_ex_mem,
        )

    @property
    def config(self) -> EvaluatorConfig:
        return self._config

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cleanup_failures(self) -> list[CleanupFailure]:
        """Deallocations that failed; they never change a call's outcome."""
        return list(self._memory.cleanup_failures)

    def evaluate(self, tx_bytes: bytes, utxos: Sequence[UTxO]) -> list[bytes]:
        """Evaluate ``tx_bytes`` and return its redeemers in evaluation order.

        Raises:
            ScriptEvaluationFailed: The module reported a script failure.
            EvaluationError: Any operational failure of the bridge.
        """
        verdict = self.evaluate_verdict(tx_bytes, utxos)
        if isinstance(verdict, Failure):
            raise ScriptEvaluationFailed(verdict.error)
        return verdict.redeemers

    def evaluate_verdict(self, tx_bytes: bytes, utxos: Sequence[UTxO]) -> Verdict:
        """Evaluate ``tx_bytes`` and return the decoded verdict.

        A script failure is returned as :class:`Failure` rather than raised.
        """
        with self._lock:
            if self._closed:
                raise EvaluatorClosed("evaluator has been closed")
            tx = parse_transaction(tx_bytes)
            inputs = list(tx.transaction_body.inputs)
            with evaluation_span(
                "evaluate transaction",
                n_inputs=len(inputs),
                tx_size=len(tx_bytes),
            ):
                resolved = build_context(inputs, UTxOIndex.from_utxos(utxos))
                frame = self._frame_utxos(resolved)
                raw = self._eval_phase_two(bytes(tx_bytes), frame)
                verdict = decode_verdict(raw)
                if isinstance(verdict, Success):
                    log_structured(
                        self._logger,
                        "info",
                        "Evaluation succeeded",
                        redeemers=len(verdict.redeemers),
                    )
                else:
                    log_structured(
                        self._logger,
                        "info",
                        "Evaluation failed",
                        error_type=verdict.error.error_type,
                        mem=verdict.error.budget.mem,
                        cpu=verdict.error.budget.cpu,
                    )
                return verdict

    def _frame_utxos(self, resolved: Sequence[ResolvedUTxO]) -> bytes:
        input_records: list[bytes] = []
        output_records: list[bytes] = []
        for utxo in resolved:
            with self._memory.buffer(encode_resolved_utxo(utxo)) as record:
                input_records.append(
                    self._memory.call_for_bytes(
                        "utxo_to_input_bytes", record.pointer, record.length
                    )
                )
                output_records.append(
                    self._memory.call_for_bytes(
                        "utxo_to_output_bytes", record.pointer, record.length
                    )
                )
        return frame_utxo_records(input_records, output_records)

    def _eval_phase_two(self, tx_bytes: bytes, frame: bytes) -> bytes:
        config = self._config
        with ExitStack() as stack:
            tx = stack.enter_context(self._memory.buffer(tx_bytes))
            utxos = stack.enter_context(self._memory.buffer(frame))
            cost_models = stack.enter_context(self._memory.buffer(config.cost_models))
            return self._memory.call_for_bytes(
                "eval_phase_two_raw",
                tx.pointer,
                tx.length,
                utxos.pointer,
                utxos.length,
                cost_models.pointer,
                cost_models.length,
                config.max_tx_ex_steps,
                config.max_tx_ex_mem,
                config.zero_time,
                config.zero_slot,
                config.slot_length,
            )

    def close(self) -> None:
        """Release the module instance. Further evaluations raise."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._guest.close()

    def __enter__(self) -> Evaluator:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


__all__ = ["Evaluator"]
