"""Guest memory bridge for the evaluation module.

Byte buffers cross the host/guest boundary through the module's own
``alloc``/``dealloc`` exports and its exported linear memory. Functions that
return variable-length data pack the result as ``(pointer << 32) | length``.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import wasmtime

from .exceptions import (
    AllocationFailed,
    CallFailed,
    InstantiationFailed,
    MemoryReadFailed,
    MemoryWriteFailed,
)
from .logging_utils import StructuredLogger, get_structured_logger, log_structured

U32_MASK = 0xFFFF_FFFF
U64_MASK = 0xFFFF_FFFF_FFFF_FFFF

REQUIRED_EXPORTS = (
    "alloc",
    "dealloc",
    "utxo_to_input_bytes",
    "utxo_to_output_bytes",
    "eval_phase_two_raw",
)
MEMORY_EXPORT = "memory"


def pack_result(pointer: int, length: int) -> int:
    """Pack a pointer/length pair the way the module returns buffers."""
    if not 0 <= pointer <= U32_MASK or not 0 <= length <= U32_MASK:
        raise ValueError("pointer and length must each fit in 32 bits")
    return (pointer << 32) | length


def unpack_result(packed: int) -> tuple[int, int]:
    """Split a packed result into ``(pointer, length)``."""
    packed &= U64_MASK
    return packed >> 32, packed & U32_MASK


@runtime_checkable
class Guest(Protocol):
    """A loaded evaluation module instance.

    Arguments and results of ``call`` are unsigned 64-bit integers. Traps
    and invocation errors are raised as :class:`CallFailed`.
    """

    def call(self, name: str, *args: int) -> int | None: ...

    def read(self, pointer: int, length: int) -> bytes: ...

    def write(self, pointer: int, data: bytes) -> None: ...

    def memory_size(self) -> int: ...

    def has_export(self, name: str) -> bool: ...

    def close(self) -> None: ...


def _to_i64(value: int) -> int:
    value &= U64_MASK
    return value - (1 << 64) if value >= 1 << 63 else value


class WasmtimeGuest:
    """Evaluation module instantiated with wasmtime and WASI."""

    def __init__(self, store: wasmtime.Store, instance: wasmtime.Instance) -> None:
        self._store: wasmtime.Store | None = store
        exports = instance.exports(store)
        self._functions: dict[str, wasmtime.Func] = {}
        for name in REQUIRED_EXPORTS:
            try:
                func = exports[name]
            except KeyError as exc:
                raise InstantiationFailed(f"module does not export {name!r}") from exc
            if not isinstance(func, wasmtime.Func):
                raise InstantiationFailed(f"export {name!r} is not a function")
            self._functions[name] = func
        try:
            memory = exports[MEMORY_EXPORT]
        except KeyError as exc:
            raise InstantiationFailed("module does not export its linear memory") from exc
        if not isinstance(memory, wasmtime.Memory):
            raise InstantiationFailed(f"export {MEMORY_EXPORT!r} is not a memory")
        self._memory: wasmtime.Memory = memory

    @classmethod
    def from_bytes(cls, wasm_bytes: bytes) -> WasmtimeGuest:
        """Compile and instantiate ``wasm_bytes`` with WASI stdout/stderr."""
        try:
            engine = wasmtime.Engine()
            store = wasmtime.Store(engine)
            wasi = wasmtime.WasiConfig()
            wasi.inherit_stdout()
            wasi.inherit_stderr()
            store.set_wasi(wasi)
            linker = wasmtime.Linker(engine)
            linker.define_wasi()
            module = wasmtime.Module(engine, wasm_bytes)
            instance = linker.instantiate(store, module)
        except (wasmtime.WasmtimeError, wasmtime.Trap) as exc:
            raise InstantiationFailed(f"failed to instantiate module: {exc}") from exc
        return cls(store, instance)

    @property
    def store(self) -> wasmtime.Store:
        if self._store is None:
            raise CallFailed("module instance has been closed")
        return self._store

    def call(self, name: str, *args: int) -> int | None:
        func = self._functions.get(name)
        if func is None:
            raise CallFailed(f"unknown export {name!r}")
        try:
            result = func(self.store, *(_to_i64(arg) for arg in args))
        except (wasmtime.Trap, wasmtime.WasmtimeError, TypeError) as exc:
            raise CallFailed(f"{name} failed: {exc}") from exc
        if result is None:
            return None
        if not isinstance(result, int):
            raise CallFailed(f"{name} returned an unexpected value: {result!r}")
        return result & U64_MASK

    def read(self, pointer: int, length: int) -> bytes:
        return bytes(self._memory.read(self.store, pointer, pointer + length))

    def write(self, pointer: int, data: bytes) -> None:
        self._memory.write(self.store, data, pointer)

    def memory_size(self) -> int:
        return self._memory.data_len(self.store)

    def has_export(self, name: str) -> bool:
        return name in self._functions or name == MEMORY_EXPORT

    def close(self) -> None:
        self._functions.clear()
        self._store = None


@dataclass(slots=True, frozen=True)
class GuestBuffer:
    """Handle to a host-written region of guest memory."""

    pointer: int
    length: int


@dataclass(slots=True, frozen=True)
class CleanupFailure:
    """A ``dealloc`` call that failed after its data had been copied out."""

    pointer: int
    length: int
    error: str


class GuestMemory:
    """Allocate/write/call/read/deallocate protocol against one guest."""

    def __init__(self, guest: Guest, logger: StructuredLogger | None = None) -> None:
        self._guest = guest
        self._logger = get_structured_logger(logger)
        self._live: Counter[tuple[int, int]] = Counter()
        self.cleanup_failures: list[CleanupFailure] = []

    @property
    def outstanding(self) -> int:
        """Number of host allocations not yet released."""
        return sum(self._live.values())

    def allocate(self, size: int) -> int:
        if size < 0:
            raise AllocationFailed(f"invalid allocation size {size}")
        try:
            pointer = self._guest.call("alloc", size)
        except CallFailed as exc:
            raise AllocationFailed(f"alloc({size}) failed: {exc}") from exc
        if pointer is None:
            raise AllocationFailed(f"alloc({size}) returned no pointer")
        if pointer == 0 and size > 0:
            raise AllocationFailed(f"alloc({size}) returned a null pointer")
        self._live[(pointer, size)] += 1
        return pointer

    def deallocate(self, pointer: int, length: int) -> None:
        """Release a region; failures are recorded and logged, never raised."""
        key = (pointer, length)
        if self._live[key] > 1:
            self._live[key] -= 1
        else:
            self._live.pop(key, None)
        try:
            self._guest.call("dealloc", pointer, length)
        except CallFailed as exc:
            self.cleanup_failures.append(
                CleanupFailure(pointer=pointer, length=length, error=str(exc))
            )
            log_structured(
                self._logger,
                "warning",
                "Failed to deallocate guest memory",
                pointer=pointer,
                length=length,
                error=str(exc),
            )

    def write(self, pointer: int, data: bytes) -> None:
        if pointer < 0 or pointer + len(data) > self._guest.memory_size():
            raise MemoryWriteFailed(
                f"write of {len(data)} bytes at {pointer} is outside guest memory"
            )
        try:
            self._guest.write(pointer, data)
        except (IndexError, ValueError) as exc:
            raise MemoryWriteFailed(f"write at {pointer} failed: {exc}") from exc

    def read(self, pointer: int, length: int) -> bytes:
        if pointer < 0 or length < 0 or pointer + length > self._guest.memory_size():
            raise MemoryReadFailed(
                f"read of {length} bytes at {pointer} is outside guest memory"
            )
        try:
            return bytes(self._guest.read(pointer, length))
        except (IndexError, ValueError) as exc:
            raise MemoryReadFailed(f"read at {pointer} failed: {exc}") from exc

    def call_exported(self, name: str, *args: int) -> int:
        """Call ``name`` synchronously and return its packed 64-bit result."""
        result = self._guest.call(name, *args)
        if result is None:
            raise CallFailed(f"no results from {name}")
        log_structured(self._logger, "debug", "Guest call returned", export=name, packed=result)
        return result & U64_MASK

    def call_for_bytes(self, name: str, *args: int) -> bytes:
        """Call ``name`` and copy out the buffer its packed result points to.

        The result region is released whether or not the copy succeeds.
        """
        pointer, length = unpack_result(self.call_exported(name, *args))
        try:
            return self.read(pointer, length)
        finally:
            self.deallocate(pointer, length)

    @contextmanager
    def buffer(self, data: bytes) -> Iterator[GuestBuffer]:
        """Allocate and fill a guest region that is released on exit."""
        pointer = self.allocate(len(data))
        try:
            self.write(pointer, data)
            yield GuestBuffer(pointer=pointer, length=len(data))
        finally:
            self.deallocate(pointer, len(data))


__all__ = [
    "CleanupFailure",
    "Guest",
    "GuestBuffer",
    "GuestMemory",
    "MEMORY_EXPORT",
    "REQUIRED_EXPORTS",
    "WasmtimeGuest",
    "pack_result",
    "unpack_result",
]
