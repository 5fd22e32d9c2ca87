"""Decoding of the tagged result returned by ``eval_phase_two_raw``."""

from __future__ import annotations

from pydantic import ValidationError

from .codec import loads_single
from .exceptions import EmptyEvaluationResult, ResultDecodeFailed
from .models import EvalError, Failure, Success, Verdict

SUCCESS_TAG = 0


def _loads(payload: bytes) -> object:
    try:
        return loads_single(payload)
    except ValueError as exc:
        raise ResultDecodeFailed(f"invalid CBOR payload: {exc}") from exc


def decode_redeemers(payload: bytes) -> list[bytes]:
    """Decode the success payload: a CBOR array of byte strings."""
    value = _loads(payload)
    if not isinstance(value, list):
        raise ResultDecodeFailed(f"expected an array of redeemers, got {type(value).__name__}")
    redeemers: list[bytes] = []
    for index, item in enumerate(value):
        if not isinstance(item, (bytes, bytearray)):
            raise ResultDecodeFailed(
                f"redeemer {index} is {type(item).__name__}, expected bytes"
            )
        redeemers.append(bytes(item))
    return redeemers


def decode_eval_error(payload: bytes) -> EvalError:
    """Decode the failure payload into an :class:`EvalError`."""
    value = _loads(payload)
    if not isinstance(value, dict):
        raise ResultDecodeFailed(f"expected an error map, got {type(value).__name__}")
    try:
        return EvalError.model_validate(value)
    except ValidationError as exc:
        raise ResultDecodeFailed(f"invalid error record: {exc}") from exc


def decode_verdict(raw: bytes) -> Verdict:
    """Interpret the leading tag byte of ``raw`` and decode the remainder.

    Tag ``0`` is a success carrying redeemers in evaluation order; any other
    tag is a script failure.
    """
    if not raw:
        raise EmptyEvaluationResult("empty result from WASM evaluation")
    tag, payload = raw[0], raw[1:]
    if tag == SUCCESS_TAG:
        return Success(redeemers=decode_redeemers(payload))
    return Failure(error=decode_eval_error(payload))


__all__ = [
    "SUCCESS_TAG",
    "decode_eval_error",
    "decode_redeemers",
    "decode_verdict",
]
