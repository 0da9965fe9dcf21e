from __future__ import annotations

from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError

from heartline.utils.diagnostics import EnvelopeError

EnvelopeT = TypeVar("EnvelopeT", bound=BaseModel)


def encode_envelope(envelope: BaseModel) -> bytes:
    """Serialize an envelope to UTF-8 JSON bytes."""
    return envelope.model_dump_json().encode("utf-8")


def decode_envelope(body: bytes, model: Type[EnvelopeT]) -> EnvelopeT:
    """Parse UTF-8 JSON bytes into `model`, raising EnvelopeError on any failure."""
    try:
        return model.model_validate_json(body)
    except ValidationError as exc:
        raise EnvelopeError(f"Invalid {model.__name__} payload: {exc}", raw=body) from exc
    except (UnicodeDecodeError, ValueError) as exc:
        raise EnvelopeError(f"Undecodable {model.__name__} payload: {exc}", raw=body) from exc
