"""Records exchanged with the evaluation module."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TypeAlias

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

LOVELACE = "lovelace"
"""Reserved asset ledger key for the base coin."""

U64_MAX = 2**64 - 1

_HEX_RE = re.compile(r"^(?:[0-9a-f]{2})*$")


def _check_hex(value: str, name: str) -> str:
    lowered = value.lower()
    if not _HEX_RE.match(lowered):
        raise ValueError(f"{name} must be an even-length hex string.")
    return lowered


class ScriptRef(BaseModel):
    """Reference script carried by an output."""

    script_type: str
    script: str

    model_config = ConfigDict(frozen=True)

    @field_validator("script")
    @classmethod
    def _validate_script(cls, value: str) -> str:
        return _check_hex(value, "script")


class ResolvedUTxO(BaseModel):
    """A transaction output resolved for one transaction input.

    This is the record handed to the module's ``utxo_to_input_bytes`` and
    ``utxo_to_output_bytes`` exports.
    """

    address: str
    tx_hash: str
    output_index: int
    assets: dict[str, int]
    datum_hash: str | None = None
    datum: str | None = Field(
        default=None,
        description="Inline datum as hex-encoded CBOR.",
    )
    script_ref: ScriptRef | None = None

    model_config = ConfigDict(frozen=True)

    @field_validator("tx_hash")
    @classmethod
    def _validate_tx_hash(cls, value: str) -> str:
        value = _check_hex(value, "tx_hash")
        if len(value) != 64:
            raise ValueError("tx_hash must encode exactly 32 bytes.")
        return value

    @field_validator("datum_hash", "datum")
    @classmethod
    def _validate_optional_hex(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None:
            return None
        return _check_hex(value, info.field_name or "value")

    @field_validator("output_index")
    @classmethod
    def _validate_output_index(cls, value: int) -> int:
        if not 0 <= value <= U64_MAX:
            raise ValueError("output_index must fit in an unsigned 64-bit integer.")
        return value

    @field_validator("assets")
    @classmethod
    def _validate_assets(cls, value: dict[str, int]) -> dict[str, int]:
        if LOVELACE not in value:
            raise ValueError(f"assets must contain a {LOVELACE!r} entry.")
        for unit, quantity in value.items():
            if not 0 <= quantity <= U64_MAX:
                raise ValueError(f"quantity for {unit!r} must be an unsigned 64-bit integer.")
        return value

    @model_validator(mode="after")
    def _validate_datum_exclusive(self) -> ResolvedUTxO:
        if self.datum_hash is not None and self.datum is not None:
            raise ValueError("datum_hash and datum are mutually exclusive.")
        return self

    @property
    def ref(self) -> tuple[str, int]:
        return self.tx_hash, self.output_index


class Budget(BaseModel):
    """Execution budget consumed by the evaluation."""

    mem: int = Field(ge=0)
    cpu: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class EvalError(BaseModel):
    """Structured failure reported by the evaluation module."""

    error_type: str
    budget: Budget
    debug_trace: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @field_validator("debug_trace", mode="before")
    @classmethod
    def _null_trace_is_empty(cls, value: object) -> object:
        return [] if value is None else value


@dataclass(slots=True, frozen=True)
class Success:
    """Evaluation passed; redeemers are in evaluation order."""

    redeemers: list[bytes] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class Failure:
    """Evaluation reported a script failure."""

    error: EvalError


Verdict: TypeAlias = Success | Failure


__all__ = [
    "LOVELACE",
    "U64_MAX",
    "Budget",
    "EvalError",
    "Failure",
    "ResolvedUTxO",
    "ScriptRef",
    "Success",
    "Verdict",
]
