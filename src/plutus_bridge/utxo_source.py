"""Sources of resolved UTxOs: offline JSON snapshots and chain lookups."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from pycardano import (
    Address,
    Asset,
    AssetName,
    DatumHash,
    MultiAsset,
    ScriptHash,
    TransactionInput,
    TransactionOutput,
    UTxO,
    Value,
)
from pycardano.exception import PyCardanoException
from pycardano.serialization import RawCBOR
from pydantic import BaseModel, Field, TypeAdapter, field_validator

from .codec import loads_single
from .context import OutputRef, input_ref, transaction_inputs
from .exceptions import DuplicateUTxO, MissingUTxO
from .models import LOVELACE

POLICY_ID_HEX_LENGTH = 56


class AssetJSON(BaseModel):
    unit: str
    quantity: int = Field(ge=0)


class OutputJSON(BaseModel):
    tx_hash: str
    output_index: int = Field(ge=0)
    address: str
    amount: list[AssetJSON] = Field(default_factory=list)
    inline_datum: str | None = None
    data_hash: str | None = None

    @field_validator("tx_hash")
    @classmethod
    def _normalize_tx_hash(cls, value: str) -> str:
        return value.lower()


class UTxOJSON(BaseModel):
    """One transaction of a UTxO snapshot with the outputs it created."""

    hash: str
    outputs: list[OutputJSON] = Field(default_factory=list)


_SNAPSHOT_ADAPTER = TypeAdapter(list[UTxOJSON])


def _value_from_amounts(amounts: Sequence[AssetJSON]) -> Value:
    coin = 0
    multi_asset = MultiAsset()
    for amount in amounts:
        if amount.unit == LOVELACE:
            coin = amount.quantity
            continue
        if len(amount.unit) < POLICY_ID_HEX_LENGTH:
            raise ValueError(f"asset unit {amount.unit!r} is shorter than a policy id")
        policy_id = ScriptHash(bytes.fromhex(amount.unit[:POLICY_ID_HEX_LENGTH]))
        asset_name = AssetName(bytes.fromhex(amount.unit[POLICY_ID_HEX_LENGTH:]))
        if policy_id not in multi_asset:
            multi_asset[policy_id] = Asset()
        multi_asset[policy_id][asset_name] = amount.quantity
    return Value(coin, multi_asset)


def output_to_utxo(output: OutputJSON, tx_input: TransactionInput) -> UTxO:
    """Convert one snapshot output into a pycardano UTxO spent by ``tx_input``.

    Outputs with an inline datum become post-Alonzo outputs carrying that
    datum; otherwise the data hash, when present, is attached.
    """
    try:
        address = Address.from_primitive(output.address)
    except (PyCardanoException, ValueError, TypeError) as exc:
        raise ValueError(f"failed to decode address {output.address!r}: {exc}") from exc

    try:
        amount = _value_from_amounts(output.amount)
    except PyCardanoException as exc:
        raise ValueError(f"invalid asset amount: {exc}") from exc

    if output.inline_datum:
        datum_cbor = bytes.fromhex(output.inline_datum)
        try:
            loads_single(datum_cbor)
        except ValueError as exc:
            raise ValueError(f"failed to decode inline datum: {exc}") from exc
        tx_output = TransactionOutput(
            address,
            amount,
            datum=RawCBOR(datum_cbor),
            post_alonzo=True,
        )
    else:
        datum_hash = DatumHash(bytes.fromhex(output.data_hash)) if output.data_hash else None
        tx_output = TransactionOutput(address, amount, datum_hash=datum_hash)
    return UTxO(tx_input, tx_output)


def parse_utxos_from_json(
    json_data: str | bytes,
    inputs: Sequence[TransactionInput],
) -> list[UTxO]:
    """Resolve ``inputs`` against a JSON UTxO snapshot.

    Inputs without a matching output are skipped; the evaluator reports them
    as :class:`MissingUTxO`. The same output listed twice raises
    :class:`DuplicateUTxO`.
    """
    snapshot = _SNAPSHOT_ADAPTER.validate_json(json_data)
    outputs: dict[OutputRef, OutputJSON] = {}
    for record in snapshot:
        for output in record.outputs:
            key = (output.tx_hash, output.output_index)
            if key in outputs:
                raise DuplicateUTxO(*key)
            outputs[key] = output

    utxos: list[UTxO] = []
    for tx_input in inputs:
        output = outputs.get(input_ref(tx_input))
        if output is None:
            continue
        utxos.append(output_to_utxo(output, tx_input))
    return utxos


def utxos_from_snapshot(json_data: str | bytes, tx_bytes: bytes) -> list[UTxO]:
    """Resolve the inputs of ``tx_bytes`` against a JSON UTxO snapshot."""
    return parse_utxos_from_json(json_data, transaction_inputs(tx_bytes))


@runtime_checkable
class UTxOLookup(Protocol):
    """Chain index resolving a single output reference."""

    def get_utxo(self, tx_hash: str, index: int) -> UTxO | None: ...


def utxos_for_transaction(tx_bytes: bytes, lookup: UTxOLookup) -> list[UTxO]:
    """Resolve every input of ``tx_bytes`` through ``lookup``, in body order."""
    utxos: list[UTxO] = []
    for tx_input in transaction_inputs(tx_bytes):
        tx_hash, index = input_ref(tx_input)
        utxo = lookup.get_utxo(tx_hash, index)
        if utxo is None:
            raise MissingUTxO(tx_hash, index)
        utxos.append(utxo)
    return utxos


__all__ = [
    "AssetJSON",
    "OutputJSON",
    "UTxOJSON",
    "UTxOLookup",
    "output_to_utxo",
    "parse_utxos_from_json",
    "utxos_for_transaction",
    "utxos_from_snapshot",
]
