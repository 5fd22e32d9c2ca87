"""Host-side bridge for phase-two (script) evaluation of Cardano transactions."""

from __future__ import annotations

from .codec import (
    decode_resolved_utxo,
    encode_resolved_utxo,
    frame_utxo_records,
    unframe_utxo_records,
)
from .config import EvaluatorConfig, SlotConfig
from .context import UTxOIndex, asset_ledger, build_context, resolve_utxo
from .evaluator import Evaluator
from .exceptions import (
    AllocationFailed,
    CallFailed,
    DuplicateUTxO,
    EmptyEvaluationResult,
    EvaluationError,
    EvaluatorClosed,
    InstantiationFailed,
    InvalidUTxO,
    MalformedTransaction,
    MemoryReadFailed,
    MemoryWriteFailed,
    MissingUTxO,
    ResultDecodeFailed,
    ScriptEvaluationFailed,
)
from .memory import GuestBuffer, GuestMemory, WasmtimeGuest, pack_result, unpack_result
from .models import Budget, EvalError, Failure, ResolvedUTxO, ScriptRef, Success, Verdict
from .utxo_source import UTxOLookup, parse_utxos_from_json, utxos_for_transaction
from .verdict import decode_verdict

__all__ = [
    "Evaluator",
    "EvaluatorConfig",
    "SlotConfig",
    "ResolvedUTxO",
    "ScriptRef",
    "Budget",
    "EvalError",
    "Success",
    "Failure",
    "Verdict",
    "UTxOIndex",
    "asset_ledger",
    "build_context",
    "resolve_utxo",
    "encode_resolved_utxo",
    "decode_resolved_utxo",
    "frame_utxo_records",
    "unframe_utxo_records",
    "GuestBuffer",
    "GuestMemory",
    "WasmtimeGuest",
    "pack_result",
    "unpack_result",
    "decode_verdict",
    "UTxOLookup",
    "parse_utxos_from_json",
    "utxos_for_transaction",
    "EvaluationError",
    "InstantiationFailed",
    "InvalidUTxO",
    "MalformedTransaction",
    "MissingUTxO",
    "DuplicateUTxO",
    "AllocationFailed",
    "MemoryWriteFailed",
    "MemoryReadFailed",
    "CallFailed",
    "EmptyEvaluationResult",
    "ResultDecodeFailed",
    "ScriptEvaluationFailed",
    "EvaluatorClosed",
]

__version__ = "0.1.0"
