"""Evaluation context: resolves transaction inputs to module-ready records."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

import cbor2
from pycardano import Transaction, TransactionInput, TransactionOutput, UTxO, Value
from pycardano.serialization import CBORSerializable, RawCBOR, default_encoder
from pydantic import ValidationError

from .exceptions import DuplicateUTxO, InvalidUTxO, MalformedTransaction, MissingUTxO
from .models import LOVELACE, ResolvedUTxO, ScriptRef

OutputRef = tuple[str, int]

SCRIPT_REF_TYPE = "plutus_v2"
"""Script type tag attached to every reference script."""


def parse_transaction(tx_bytes: bytes) -> Transaction:
    """Decode CBOR transaction bytes, raising :class:`MalformedTransaction`."""
    try:
        return Transaction.from_cbor(bytes(tx_bytes))
    except Exception as exc:
        raise MalformedTransaction(f"failed to decode transaction: {exc}") from exc


def transaction_inputs(tx_bytes: bytes) -> list[TransactionInput]:
    """Return the spent inputs of a transaction in body order."""
    return list(parse_transaction(tx_bytes).transaction_body.inputs)


def input_ref(tx_input: TransactionInput) -> OutputRef:
    """Return the ``(tx_hash_hex, index)`` key of a transaction input."""
    return tx_input.transaction_id.payload.hex(), int(tx_input.index)


class UTxOIndex(Mapping[OutputRef, UTxO]):
    """Immutable lookup of resolved UTxOs keyed by output reference.

    Built once per evaluation and discarded afterwards.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Mapping[OutputRef, UTxO]) -> None:
        self._entries = dict(entries)

    @classmethod
    def from_utxos(cls, utxos: Iterable[UTxO]) -> UTxOIndex:
        entries: dict[OutputRef, UTxO] = {}
        for utxo in utxos:
            key = input_ref(utxo.input)
            if key in entries:
                raise DuplicateUTxO(*key)
            entries[key] = utxo
        return cls(entries)

    def __getitem__(self, key: OutputRef) -> UTxO:
        return self._entries[key]

    def __iter__(self) -> Iterator[OutputRef]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def resolve(self, tx_input: TransactionInput) -> UTxO:
        key = input_ref(tx_input)
        utxo = self._entries.get(key)
        if utxo is None:
            raise MissingUTxO(*key)
        return utxo


def _as_value(amount: Value | int) -> Value:
    return amount if isinstance(amount, Value) else Value(coin=amount)


def asset_ledger(output: TransactionOutput) -> dict[str, int]:
    """Map asset ids (``policy_hex + asset_name_hex``) to quantities.

    The base coin is always present under ``"lovelace"``.
    """
    value = _as_value(output.amount)
    ledger = {LOVELACE: int(value.coin)}
    for policy_id, assets in (value.multi_asset or {}).items():
        for asset_name, quantity in assets.items():
            ledger[policy_id.payload.hex() + asset_name.payload.hex()] = int(quantity)
    return ledger


def _datum_hex(datum: Any) -> str:
    if isinstance(datum, RawCBOR):
        return bytes(datum.cbor).hex()
    if isinstance(datum, CBORSerializable):
        return datum.to_cbor_hex()
    return cbor2.dumps(datum, default=default_encoder).hex()


def _script_bytes(script: Any) -> bytes:
    if isinstance(script, bytes):
        return bytes(script)
    return bytes.fromhex(script.to_cbor_hex())


def resolve_utxo(utxo: UTxO) -> ResolvedUTxO:
    """Build the record the module expects for one resolved input.

    Outputs that do not satisfy the record invariants raise
    :class:`InvalidUTxO`.
    """
    output = utxo.output
    tx_hash, index = input_ref(utxo.input)

    datum_hash = None
    if output.datum_hash is not None and output.datum_hash.payload:
        datum_hash = output.datum_hash.payload.hex()

    datum = None
    if output.datum is not None:
        encoded = _datum_hex(output.datum)
        datum = encoded or None

    script = _script_bytes(output.script) if output.script is not None else b""

    try:
        return ResolvedUTxO(
            address=str(output.address),
            tx_hash=tx_hash,
            output_index=index,
            datum_hash=datum_hash,
            datum=datum,
            script_ref=(
                ScriptRef(script_type=SCRIPT_REF_TYPE, script=script.hex()) if script else None
            ),
            assets=asset_ledger(output),
        )
    except ValidationError as exc:
        raise InvalidUTxO(tx_hash, index, str(exc)) from exc


def build_context(
    inputs: Iterable[TransactionInput],
    index: UTxOIndex,
) -> list[ResolvedUTxO]:
    """Resolve every input in transaction order.

    The first input without a UTxO aborts the whole build with
    :class:`MissingUTxO`.
    """
    return [resolve_utxo(index.resolve(tx_input)) for tx_input in inputs]


__all__ = [
    "OutputRef",
    "SCRIPT_REF_TYPE",
    "UTxOIndex",
    "asset_ledger",
    "build_context",
    "input_ref",
    "parse_transaction",
    "resolve_utxo",
    "transaction_inputs",
]
