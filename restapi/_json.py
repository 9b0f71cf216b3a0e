"""JSON encode/decode helpers backed by pydantic.

Decoding goes straight from the response's bytes into the requested type via
``TypeAdapter.validate_json``; no intermediate ``str`` or ``dict`` tree is
built. Encoding produces bytes via ``pydantic_core.to_json``.

This is an internal module and should not be imported directly by users.
"""

from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_json

from restapi.exceptions import RestError

T = TypeVar("T")


@lru_cache(maxsize=256)
def _adapter_for(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


def _get_adapter(target: Any) -> TypeAdapter:
    try:
        return _adapter_for(target)
    except TypeError:
        # Unhashable type expressions cannot be cached.
        return TypeAdapter(target)


def decode_json(body: bytes, target: type[T], status: int | None = None) -> T:
    """Parse ``body`` into ``target`` in one pass.

    Args:
        body: Raw response bytes.
        target: Any type pydantic can validate (models, dataclasses,
            TypedDicts, builtins, generics).
        status: Status of the response the body came from, carried on the
            error for diagnostics.

    Returns:
        The decoded value.

    Raises:
        RestError: DECODE, not retryable, if the bytes are not valid JSON or
            do not match ``target``.
    """
    try:
        return _get_adapter(target).validate_json(body)
    except ValidationError as e:
        raise RestError.decode(
            f"failed to decode response body as {_type_name(target)}: {e}",
            status=status,
        ) from e


def encode_json(payload: Any) -> bytes:
    """Serialize ``payload`` to JSON bytes.

    Raises:
        RestError: DECODE, not retryable, if the payload cannot be serialized.
    """
    try:
        return to_json(payload)
    except PydanticSerializationError as e:
        raise RestError.decode(f"failed to encode JSON payload: {e}") from e


def _type_name(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)
