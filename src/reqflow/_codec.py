import dataclasses
import json
from typing import Any, Iterable, Protocol, runtime_checkable

from pydantic import BaseModel, ValidationError

from .models.errors import DecodingError, EncodingError


@runtime_checkable
class Codec(Protocol):
    """Converts between structured values and byte payloads."""

    content_type: str

    def encode(self, value: Any) -> bytes: ...

    def decode(self, stream: Iterable[bytes], target: Any) -> None: ...


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class JsonCodec:
    """JSON codec used when a builder does not configure one.

    Encoding accepts anything ``json`` can serialize plus pydantic models
    (dumped by alias) and dataclass instances. Decoding writes into a mutable
    target: a ``dict``, a ``list`` or a pydantic model instance.
    """

    content_type = "application/json"

    def encode(self, value: Any) -> bytes:
        try:
            return json.dumps(
                value,
                default=_to_jsonable,
                allow_nan=False,
                separators=(",", ":"),
                ensure_ascii=False,
            ).encode("utf-8")
        except (TypeError, ValueError, RecursionError) as e:
            raise EncodingError(f"failed to encode request body: {e}") from e

    def decode(self, stream: Iterable[bytes], target: Any) -> None:
        raw = b"".join(stream)
        if not raw.strip():
            raise DecodingError("failed to decode response body: empty body")
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
            raise DecodingError(f"failed to decode response body: {e}") from e

        if isinstance(target, BaseModel):
            self._populate_model(target, data)
        elif isinstance(target, dict):
            if not isinstance(data, dict):
                raise DecodingError(
                    f"cannot decode JSON {type(data).__name__} into dict"
                )
            target.clear()
            target.update(data)
        elif isinstance(target, list):
            if not isinstance(data, list):
                raise DecodingError(
                    f"cannot decode JSON {type(data).__name__} into list"
                )
            target[:] = data
        else:
            raise DecodingError(
                f"unsupported decode target type: {type(target).__name__}"
            )

    @staticmethod
    def _populate_model(target: BaseModel, data: Any) -> None:
        model_cls = type(target)
        try:
            validated = model_cls.model_validate(data)
        except ValidationError as e:
            raise DecodingError(
                f"response body does not match {model_cls.__name__}: {e}"
            ) from e
        try:
            for name in model_cls.model_fields:
                setattr(target, name, getattr(validated, name))
        except ValidationError as e:
            # frozen models refuse assignment
            raise DecodingError(f"cannot populate {model_cls.__name__}: {e}") from e


default_codec = JsonCodec()
