"""
Record payload decoding.

Two stages:
    1. parse: bytes -> UTF-8 text -> JSON. If the JSON value is a string,
       parse it once more (producers may serialize twice). At most two
       layers are unwrapped; a value still a string after that is rejected.
    2. classify: tag the result with a PayloadKind instead of letting
       downstream code inspect runtime types.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from core.errors import PayloadDecodeError
from stream_indexer.config import PipelineMode
from stream_indexer.schemas.documents import ObjectReference

MAX_ENCODING_LAYERS = 2


class PayloadKind(str, Enum):
    DOCUMENT = "document"
    DOUBLE_ENCODED = "double_encoded"
    OBJECT_REFERENCE = "object_reference"


@dataclass(frozen=True)
class DecodedPayload:
    """A classified payload.

    `body` is always the unwrapped JSON object; `reference` is set only for
    OBJECT_REFERENCE payloads.
    """

    kind: PayloadKind
    body: Dict[str, Any]
    reference: Optional[ObjectReference] = None


def parse_json_layers(text: str) -> Tuple[Any, int]:
    """
    Parse JSON text, unwrapping one extra string layer if present.

    Returns:
        (value, layers) where layers is 1 or 2

    Raises:
        PayloadDecodeError: Invalid JSON, or still a string after two layers
    """
    value: Any = text
    for layer in range(1, MAX_ENCODING_LAYERS + 1):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise PayloadDecodeError(
                f"Invalid JSON at encoding layer {layer}: {e.msg}",
                cause=e,
                context={"layer": layer},
            ) from e
        if not isinstance(value, str):
            return value, layer

    raise PayloadDecodeError(
        f"Payload is encoded more than {MAX_ENCODING_LAYERS} times",
        context={"layer": MAX_ENCODING_LAYERS},
    )


def decode_text(text: str, mode: PipelineMode = PipelineMode.PRODUCTS) -> DecodedPayload:
    """Parse and classify JSON text (already UTF-8 decoded)."""
    value, layers = parse_json_layers(text)

    if not isinstance(value, dict):
        raise PayloadDecodeError(
            f"Expected a JSON object, got {type(value).__name__}",
            context={"layers": layers},
        )

    if mode == PipelineMode.FILES:
        try:
            reference = ObjectReference.model_validate(value)
        except PydanticValidationError as e:
            raise PayloadDecodeError(
                f"Invalid object reference: {e.error_count()} validation error(s)",
                cause=e,
            ) from e
        return DecodedPayload(
            kind=PayloadKind.OBJECT_REFERENCE, body=value, reference=reference
        )

    kind = PayloadKind.DOUBLE_ENCODED if layers == 2 else PayloadKind.DOCUMENT
    return DecodedPayload(kind=kind, body=value)


def decode_payload(data: bytes, mode: PipelineMode = PipelineMode.PRODUCTS) -> DecodedPayload:
    """
    Decode raw record bytes into a classified payload.

    Args:
        data: Record payload bytes
        mode: FILES expects an object reference; PRODUCTS a document

    Raises:
        PayloadDecodeError: On any decoding or classification failure
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PayloadDecodeError(
            f"Payload is not valid UTF-8 at byte {e.start}", cause=e
        ) from e
    return decode_text(text, mode)
