"""Evaluator configuration and chain time references."""

from __future__ import annotations

from importlib import resources
from pathlib import Path

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .exceptions import InstantiationFailed
from .models import U64_MAX

DEFAULT_MODULE_RESOURCE = "plutus_eval.wasm"
"""File name of the packaged evaluation module inside ``plutus_bridge/data``."""


class SlotConfig(BaseModel):
    """Mapping between POSIX time (milliseconds) and slot numbers."""

    zero_time: int = Field(description="POSIX time in milliseconds of zero_slot.")
    zero_slot: int = Field(description="Slot number at zero_time.")
    slot_length: int = Field(description="Slot length in milliseconds.")

    model_config = ConfigDict(frozen=True)

    @field_validator("zero_time", "zero_slot")
    @classmethod
    def _validate_u64(cls, value: int, info: ValidationInfo) -> int:
        if not 0 <= value <= U64_MAX:
            raise ValueError(f"{info.field_name} must be an unsigned 64-bit integer.")
        return value

    @field_validator("slot_length")
    @classmethod
    def _validate_slot_length(cls, value: int) -> int:
        if not 0 < value <= U64_MAX:
            raise ValueError("slot_length must be > 0.")
        return value

    @classmethod
    def mainnet(cls) -> SlotConfig:
        return cls(zero_time=1596059091000, zero_slot=4492800, slot_length=1000)

    @classmethod
    def preprod(cls) -> SlotConfig:
        return cls(zero_time=1655769600000, zero_slot=86400, slot_length=1000)

    @classmethod
    def preview(cls) -> SlotConfig:
        return cls(zero_time=1666656000000, zero_slot=0, slot_length=1000)

    def slot_to_posix_time(self, slot: int) -> int:
        """Return the POSIX time in milliseconds at which ``slot`` begins."""
        return self.zero_time + (slot - self.zero_slot) * self.slot_length

    def posix_time_to_slot(self, posix_time: int) -> int:
        """Return the slot containing ``posix_time`` (milliseconds)."""
        if posix_time < self.zero_time:
            raise ValueError("posix_time precedes the zero time of this slot config.")
        return self.zero_slot + (posix_time - self.zero_time) // self.slot_length


class EvaluatorConfig(BaseModel):
    """Immutable configuration for an :class:`~plutus_bridge.evaluator.Evaluator`."""

    # Module source
    wasm_bytes: bytes | None = Field(
        default=None,
        repr=False,
        description="Evaluation module binary; takes precedence over the packaged default.",
    )
    wasm_file: Path | None = Field(
        default=None,
        description="Path to an evaluation module binary to load instead of the packaged default.",
    )

    # Cost models
    cost_models: bytes = Field(
        default=b"",
        repr=False,
        description="Serialized cost models, passed to the module verbatim.",
    )

    # Budget
    max_tx_ex_steps: int = Field(
        default=10_000_000_000,
        description="Maximum execution steps for the whole transaction.",
    )
    max_tx_ex_mem: int = Field(
        default=14_000_000,
        description="Maximum execution memory units for the whole transaction.",
    )

    # Chain time reference
    zero_time: int = Field(default=1596059091000, description="POSIX time (ms) of zero_slot.")
    zero_slot: int = Field(default=4492800, description="Slot number at zero_time.")
    slot_length: int = Field(default=1000, description="Slot length in milliseconds.")

    model_config = ConfigDict(frozen=True)

    @field_validator(
        "max_tx_ex_steps",
        "max_tx_ex_mem",
        "zero_time",
        "zero_slot",
        "slot_length",
    )
    @classmethod
    def _validate_u64(cls, value: int, info: ValidationInfo) -> int:
        if not 0 <= value <= U64_MAX:
            raise ValueError(f"{info.field_name} must be an unsigned 64-bit integer.")
        return value

    @model_validator(mode="after")
    def _validate_module_source(self) -> EvaluatorConfig:
        if self.wasm_bytes is not None and self.wasm_file is not None:
            raise ValueError("wasm_bytes and wasm_file are mutually exclusive.")
        return self

    @property
    def slot_config(self) -> SlotConfig:
        return SlotConfig(
            zero_time=self.zero_time,
            zero_slot=self.zero_slot,
            slot_length=self.slot_length,
        )

    def with_slot_config(self, slot_config: SlotConfig) -> EvaluatorConfig:
        """Return a copy using the time reference of ``slot_config``."""
        return self.model_copy(
            update={
                "zero_time": slot_config.zero_time,
                "zero_slot": slot_config.zero_slot,
                "slot_length": slot_config.slot_length,
            }
        )

    def load_module_bytes(self) -> bytes:
        """Resolve the module source to a binary.

        Order: ``wasm_bytes``, then ``wasm_file``, then the packaged default.
        """
        if self.wasm_bytes is not None:
            return self.wasm_bytes
        if self.wasm_file is not None:
            try:
                return self.wasm_file.read_bytes()
            except OSError as exc:
                raise InstantiationFailed(
                    f"failed to read custom WASM file: {self.wasm_file}"
                ) from exc
        return default_module_bytes()


def default_module_bytes() -> bytes:
    """Return the evaluation module shipped in ``plutus_bridge/data``."""
    resource = (
        resources.files("plutus_bridge").joinpath("data").joinpath(DEFAULT_MODULE_RESOURCE)
    )
    try:
        return resource.read_bytes()
    except OSError as exc:
        raise InstantiationFailed(
            f"no packaged evaluation module found ({DEFAULT_MODULE_RESOURCE}); "
            "set wasm_bytes or wasm_file"
        ) from exc


__all__ = [
    "DEFAULT_MODULE_RESOURCE",
    "EvaluatorConfig",
    "SlotConfig",
    "default_module_bytes",
]
