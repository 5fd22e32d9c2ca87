"""Shared helpers for plutus-bridge tests."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import cbor2
from pycardano import (
    Address,
    Network,
    Transaction,
    TransactionBody,
    TransactionInput,
    TransactionOutput,
    TransactionWitnessSet,
    UTxO,
    Value,
    VerificationKeyHash,
)

from plutus_bridge.exceptions import CallFailed
from plutus_bridge.memory import pack_result, unpack_result

TX_HASH = "aa" * 32
OTHER_TX_HASH = "bb" * 32

SUCCESS_RESULT = b"\x00" + cbor2.dumps([bytes.fromhex("840000d87980821a000f42401a05f5e100")])
FAILURE_RESULT = b"\x01" + cbor2.dumps(
    {
        "error_type": "EvaluationFailure",
        "budget": {"mem": 1200, "cpu": 345000},
        "debug_trace": ["validator returned false"],
    }
)


def make_address() -> Address:
    return Address(VerificationKeyHash(bytes(28)), network=Network.TESTNET)


def make_utxo(
    tx_hash: str = TX_HASH,
    index: int = 0,
    amount: Value | None = None,
    **output_kwargs: Any,
) -> UTxO:
    output = TransactionOutput(
        make_address(),
        amount if amount is not None else Value(2_000_000),
        **output_kwargs,
    )
    return UTxO(TransactionInput.from_primitive([tx_hash, index]), output)


def make_tx_bytes(*refs: tuple[str, int]) -> bytes:
    """Serialize a minimal transaction spending ``refs``."""
    refs = refs or ((TX_HASH, 0),)
    body = TransactionBody(
        inputs=[TransactionInput.from_primitive([tx_hash, index]) for tx_hash, index in refs],
        outputs=[TransactionOutput(make_address(), Value(1_000_000))],
        fee=200_000,
    )
    return bytes.fromhex(Transaction(body, TransactionWitnessSet()).to_cbor_hex())


class FakeGuest:
    """In-process stand-in for the evaluation module.

    Tracks every live allocation so tests can check that nothing leaks.
    ``utxo_to_input_bytes``/``utxo_to_output_bytes`` prefix the record with
    ``b"in:"``/``b"out:"``; ``eval_phase_two_raw`` records its inputs and
    returns ``result``.
    """

    def __init__(
        self,
        result: bytes = SUCCESS_RESULT,
        *,
        memory_size: int = 1 << 16,
        trap_on: Sequence[str] = (),
        alloc_result: int | None | bool = True,
        fail_dealloc: bool = False,
        exports: Sequence[str] | None = None,
    ) -> None:
        self.result = result
        self.memory = bytearray(memory_size)
        self.trap_on = set(trap_on)
        self.alloc_result = alloc_result
        self.fail_dealloc = fail_dealloc
        self.exports = set(
            exports
            if exports is not None
            else (
                "alloc",
                "dealloc",
                "utxo_to_input_bytes",
                "utxo_to_output_bytes",
                "eval_phase_two_raw",
            )
        )
        self.live: dict[int, int] = {}
        self.freed: list[tuple[int, int]] = []
        self.calls: list[tuple[str, tuple[int, ...]]] = []
        self.eval_args: tuple[int, ...] | None = None
        self.eval_inputs: dict[str, bytes] = {}
        self.closed = False
        self._next = 8

    # Guest protocol

    def call(self, name: str, *args: int) -> int | None:
        self.calls.append((name, args))
        if name in self.trap_on:
            raise CallFailed(f"{name} trapped")
        if name not in self.exports:
            raise CallFailed(f"unknown export {name!r}")
        return getattr(self, f"_export_{name}")(*args)

    def read(self, pointer: int, length: int) -> bytes:
        return bytes(self.memory[pointer : pointer + length])

    def write(self, pointer: int, data: bytes) -> None:
        self.memory[pointer : pointer + len(data)] = data

    def memory_size(self) -> int:
        return len(self.memory)

    def has_export(self, name: str) -> bool:
        return name in self.exports

    def close(self) -> None:
        self.closed = True

    # Exports

    def _guest_alloc(self, size: int) -> int:
        pointer = self._next
        self._next += max(size, 1)
        self.live[pointer] = size
        return pointer

    def _export_alloc(self, size: int) -> int | None:
        if self.alloc_result is not True:
            return self.alloc_result  # type: ignore[return-value]
        return self._guest_alloc(size)

    def _export_dealloc(self, pointer: int, size: int) -> None:
        if self.fail_dealloc:
            raise CallFailed("dealloc trapped")
        if self.live.get(pointer) != size:
            raise CallFailed(f"invalid dealloc({pointer}, {size})")
        del self.live[pointer]
        self.freed.append((pointer, size))

    def _return_bytes(self, data: bytes) -> int:
        pointer = self._guest_alloc(len(data))
        self.write(pointer, data)
        return pack_result(pointer, len(data))

    def _export_utxo_to_input_bytes(self, pointer: int, length: int) -> int:
        return self._return_bytes(b"in:" + self.read(pointer, length))

    def _export_utxo_to_output_bytes(self, pointer: int, length: int) -> int:
        return self._return_bytes(b"out:" + self.read(pointer, length))

    def _export_eval_phase_two_raw(self, *args: int) -> int:
        self.eval_args = args
        tx_ptr, tx_len, frame_ptr, frame_len, cm_ptr, cm_len = args[:6]
        self.eval_inputs = {
            "tx": self.read(tx_ptr, tx_len),
            "frame": self.read(frame_ptr, frame_len),
            "cost_models": self.read(cm_ptr, cm_len),
        }
        return self._return_bytes(self.result)


def _wat_bytes(data: bytes) -> str:
    return "".join(f"\\{byte:02x}" for byte in data)


def evaluation_module_wat(result: bytes, *, result_offset: int = 16) -> str:
    """WAT for a minimal module honouring the five-export contract.

    ``alloc`` is a bump allocator, ``dealloc`` is a no-op, the UTxO
    conversions echo their input region and ``eval_phase_two_raw`` returns
    ``result`` from a data segment.
    """
    packed = pack_result(result_offset, len(result))
    return f"""
(module
  (memory (export "memory") 1)
  (global $next (mut i32) (i32.const 4096))
  (data (i32.const {result_offset}) "{_wat_bytes(result)}")
  (func (export "alloc") (param $size i64) (result i64)
    (local $ptr i32)
    (local.set $ptr (global.get $next))
    (global.set $next
      (i32.add (global.get $next) (i32.add (i32.wrap_i64 (local.get $size)) (i32.const 8))))
    (i64.extend_i32_u (local.get $ptr)))
  (func (export "dealloc") (param i64 i64))
  (func (export "utxo_to_input_bytes") (param $ptr i64) (param $len i64) (result i64)
    (i64.or (i64.shl (local.get $ptr) (i64.const 32)) (local.get $len)))
  (func (export "utxo_to_output_bytes") (param $ptr i64) (param $len i64) (result i64)
    (i64.or (i64.shl (local.get $ptr) (i64.const 32)) (local.get $len)))
  (func (export "eval_phase_two_raw")
    (param i64 i64 i64 i64 i64 i64 i64 i64 i64 i64 i64) (result i64)
    (i64.const {packed}))
)
"""


TRAPPING_ALLOC_WAT = """
(module
  (memory (export "memory") 1)
  (func (export "alloc") (param i64) (result i64) unreachable)
  (func (export "dealloc") (param i64 i64))
  (func (export "utxo_to_input_bytes") (param i64 i64) (result i64) (i64.const 0))
  (func (export "utxo_to_output_bytes") (param i64 i64) (result i64) (i64.const 0))
  (func (export "eval_phase_two_raw")
    (param i64 i64 i64 i64 i64 i64 i64 i64 i64 i64 i64) (result i64) (i64.const 0))
)
"""

MISSING_EXPORTS_WAT = """
(module
  (memory (export "memory") 1)
  (func (export "alloc") (param i64) (result i64) (i64.const 8))
)
"""


__all__ = [
    "FAILURE_RESULT",
    "FakeGuest",
    "MISSING_EXPORTS_WAT",
    "OTHER_TX_HASH",
    "SUCCESS_RESULT",
    "TRAPPING_ALLOC_WAT",
    "TX_HASH",
    "evaluation_module_wat",
    "make_address",
    "make_tx_bytes",
    "make_utxo",
    "unpack_result",
]
