"""
Value codecs for session payloads.

A codec turns the session's value mapping into the bytes stored in the
``data`` column and back. Decoding never returns a partial result: bytes
that are not a complete, well-formed payload raise CodecError.
"""

import base64
import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol
from uuid import UUID

from sessionstore.core.errors import CodecError

# Marker key for values JSON cannot represent natively
TAG_KEY = "__t"
VALUE_KEY = "v"

# Format version stored alongside every payload
PAYLOAD_VERSION = 1


class ValueCodec(Protocol):
    """Serializer for the session value mapping"""

    def encode(self, values: dict[Any, Any]) -> bytes: ...

    def decode(self, data: bytes) -> dict[Any, Any]: ...


class JSONValueCodec:
    """
    JSON codec that round-trips the session value mapping exactly.

    Mappings are written as lists of ``[key, value]`` pairs so keys keep
    their type. Values JSON has no type for (bytes, tuples, datetimes,
    dates, UUIDs, decimals) are written as tagged objects.
    """

    def encode(self, values: dict[Any, Any]) -> bytes:
        if not isinstance(values, dict):
            raise CodecError(f"Session values must be a dict, got {type(values).__name__}")
        try:
            payload = {"version": PAYLOAD_VERSION, "values": self._pack(values)}
            return json.dumps(payload, separators=(",", ":"), allow_nan=False).encode("utf-8")
        except CodecError:
            raise
        except RecursionError as e:
            raise CodecError("Session values are nested too deeply or refer to themselves") from e
        except (TypeError, ValueError) as e:
            raise CodecError(f"Session values could not be encoded: {e}") from e

    def decode(self, data: bytes) -> dict[Any, Any]:
        try:
            payload = json.loads(bytes(data).decode("utf-8"))
        except RecursionError as e:
            raise CodecError("Stored session data is nested too deeply") from e
        except (TypeError, ValueError) as e:
            raise CodecError(f"Stored session data is not valid JSON: {e}") from e

        if not isinstance(payload, dict) or payload.get("version") != PAYLOAD_VERSION:
            raise CodecError("Stored session data has an unknown format")

        try:
            values = self._unpack(payload.get("values"))
        except RecursionError as e:
            raise CodecError("Stored session data is nested too deeply") from e
        if not isinstance(values, dict):
            raise CodecError("Stored session data does not hold a mapping")
        return values

    def _pack(self, value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        if isinstance(value, dict):
            return {TAG_KEY: "dict", VALUE_KEY: [[self._pack(k), self._pack(v)] for k, v in value.items()]}
        if isinstance(value, list):
            return [self._pack(item) for item in value]
        if isinstance(value, tuple):
            return {TAG_KEY: "tuple", VALUE_KEY: [self._pack(item) for item in value]}
        if isinstance(value, bytes):
            return {TAG_KEY: "bytes", VALUE_KEY: base64.b64encode(value).decode("ascii")}
        if isinstance(value, datetime):
            return {TAG_KEY: "datetime", VALUE_KEY: value.isoformat()}
        if isinstance(value, date):
            return {TAG_KEY: "date", VALUE_KEY: value.isoformat()}
        if isinstance(value, UUID):
            return {TAG_KEY: "uuid", VALUE_KEY: str(value)}
        if isinstance(value, Decimal):
            return {TAG_KEY: "decimal", VALUE_KEY: str(value)}
        raise CodecError(f"Unsupported session value type: {type(value).__name__}")

    def _unpack(self, value: Any) -> Any:
        if isinstance(value, list):
            return [self._unpack(item) for item in value]
        if not isinstance(value, dict):
            return value

        if set(value) != {TAG_KEY, VALUE_KEY}:
            raise CodecError("Stored session data contains an untagged object")

        tag, raw = value[TAG_KEY], value[VALUE_KEY]
        try:
            if tag == "dict":
                result = {}
                for key, item in raw:
                    result[self._unpack(key)] = self._unpack(item)
                return result
            if tag == "tuple":
                return tuple(self._unpack(item) for item in raw)
            if tag == "bytes":
                return base64.b64decode(raw, validate=True)
            if tag == "datetime":
                return datetime.fromisoformat(raw)
            if tag == "date":
                return date.fromisoformat(raw)
            if tag == "uuid":
                return UUID(raw)
            if tag == "decimal":
                return Decimal(raw)
        except CodecError:
            raise
        except (TypeError, ValueError, InvalidOperation) as e:
            raise CodecError(f"Stored session value tagged {tag!r} is corrupt: {e}") from e

        raise CodecError(f"Stored session data uses unknown tag {tag!r}")
