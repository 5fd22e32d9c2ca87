"""Host-side binary encoding of resolved UTxOs and the UTxO frame."""

from __future__ import annotations

import struct
from collections.abc import Sequence
from io import BytesIO
from typing import Any

import cbor2
from pydantic import ValidationError

from .models import ResolvedUTxO, ScriptRef

_U64_LE = struct.Struct("<Q")

BREAK_CODE = 0xFF


def loads_single(data: bytes) -> Any:
    """Decode exactly one CBOR data item from ``data``.

    Raises ``ValueError`` for invalid CBOR, a lone break code or bytes left
    over after the item.
    """
    data = bytes(data)
    if data[:1] == bytes([BREAK_CODE]):
        raise ValueError("break code outside an indefinite-length item")
    fp = BytesIO(data)
    try:
        value = cbor2.CBORDecoder(fp).decode()
    except (cbor2.CBORDecodeError, EOFError) as exc:
        raise ValueError(f"invalid CBOR: {exc}") from exc
    if fp.tell() != len(data):
        raise ValueError(f"{len(data) - fp.tell()} trailing bytes after CBOR item")
    return value


def _utxo_to_primitive(utxo: ResolvedUTxO) -> dict[str, Any]:
    # Key order is part of the encoding; optionals are omitted, never null.
    record: dict[str, Any] = {
        "address": utxo.address,
        "tx_hash": utxo.tx_hash,
        "output_index": utxo.output_index,
    }
    if utxo.datum_hash is not None:
        record["datum_hash"] = utxo.datum_hash
    if utxo.datum is not None:
        record["datum"] = utxo.datum
    if utxo.script_ref is not None:
        record["script_ref"] = {
            "script_type": utxo.script_ref.script_type,
            "script": utxo.script_ref.script,
        }
    record["assets"] = {unit: utxo.assets[unit] for unit in sorted(utxo.assets)}
    return record


def encode_resolved_utxo(utxo: ResolvedUTxO) -> bytes:
    """Encode ``utxo`` as the CBOR record consumed by ``utxo_to_*_bytes``.

    The encoding is deterministic: field order is fixed, asset keys are
    sorted and integers use their minimal CBOR form.
    """
    return cbor2.dumps(_utxo_to_primitive(utxo))


def decode_resolved_utxo(data: bytes) -> ResolvedUTxO:
    """Inverse of :func:`encode_resolved_utxo`."""
    try:
        raw = loads_single(data)
    except ValueError as exc:
        raise ValueError(f"invalid CBOR in UTxO record: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError("UTxO record must be a CBOR map")
    script_ref = raw.get("script_ref")
    try:
        return ResolvedUTxO(
            address=raw["address"],
            tx_hash=raw["tx_hash"],
            output_index=raw["output_index"],
            datum_hash=raw.get("datum_hash"),
            datum=raw.get("datum"),
            script_ref=ScriptRef.model_validate(script_ref) if script_ref is not None else None,
            assets=raw["assets"],
        )
    except (KeyError, ValidationError) as exc:
        raise ValueError(f"invalid UTxO record: {exc}") from exc


def frame_utxo_records(
    input_records: Sequence[bytes],
    output_records: Sequence[bytes],
) -> bytes:
    """Frame input/output record pairs for ``eval_phase_two_raw``.

    Layout, all integers unsigned 64-bit little-endian::

        count
        (len(input) input len(output) output) * count

    Pairs keep the order of the transaction inputs; the module correlates
    them by position.
    """
    if len(input_records) != len(output_records):
        raise ValueError(
            f"record count mismatch: {len(input_records)} inputs, "
            f"{len(output_records)} outputs"
        )
    parts = [_U64_LE.pack(len(input_records))]
    for input_record, output_record in zip(input_records, output_records):
        parts.append(_U64_LE.pack(len(input_record)))
        parts.append(bytes(input_record))
        parts.append(_U64_LE.pack(len(output_record)))
        parts.append(bytes(output_record))
    return b"".join(parts)


def unframe_utxo_records(frame: bytes) -> list[tuple[bytes, bytes]]:
    """Split a UTxO frame back into ``(input_record, output_record)`` pairs."""
    view = memoryview(frame)
    offset = 0

    def take_u64() -> int:
        nonlocal offset
        if offset + _U64_LE.size > len(view):
            raise ValueError(f"truncated frame at offset {offset}")
        (value,) = _U64_LE.unpack_from(view, offset)
        offset += _U64_LE.size
        return value

    def take_bytes(length: int) -> bytes:
        nonlocal offset
        if offset + length > len(view):
            raise ValueError(f"truncated frame at offset {offset}")
        chunk = bytes(view[offset : offset + length])
        offset += length
        return chunk

    count = take_u64()
    pairs: list[tuple[bytes, bytes]] = []
    for _ in range(count):
        input_record = take_bytes(take_u64())
        output_record = take_bytes(take_u64())
        pairs.append((input_record, output_record))
    if offset != len(view):
        raise ValueError(f"{len(view) - offset} trailing bytes after frame")
    return pairs


__all__ = [
    "decode_resolved_utxo",
    "encode_resolved_utxo",
    "frame_utxo_records",
    "loads_single",
    "unframe_utxo_records",
]
