### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Common Schema Helpers -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Common Schema Helpers

Date handling and JSON list encoding shared by the record schemas.

Remote files are JSON arrays written by several app versions, so dates
are always written as ISO-8601 UTC with a trailing ``Z`` and no
fractional seconds.
"""

from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from petshop.errors import DecodingError

T = TypeVar("T")

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime:
    """Current UTC time, truncated to whole seconds"""
    return datetime.now(UTC).replace(microsecond=0)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_iso8601(value: datetime) -> str:
    """Format a datetime the way the remote files store it"""
    return ensure_utc(value).strftime(ISO_FORMAT)


def decode_list(adapter: TypeAdapter[list[T]], data: bytes | str, what: str) -> list[T]:
    """
    Decode a JSON array of records.

    Empty content means "file not found" and decodes to an empty list.

    Raises:
        DecodingError: If the content is not a valid record array
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodingError(f"Could not decode {what}: not valid UTF-8") from e
    if not data.strip():
        return []
    try:
        return adapter.validate_json(data)
    except ValidationError as e:
        raise DecodingError(f"Could not decode {what}: {e.error_count()} invalid field(s)") from e


def encode_list(adapter: TypeAdapter[list[Any]], records: list[Any]) -> bytes:
    """Encode records as a pretty-printed JSON array"""
    return adapter.dump_json(records, by_alias=True, indent=2)
