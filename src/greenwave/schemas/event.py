"""Event record — one ambulance passing one traffic light.

Learn: The same model is used on both ends of the push channel. The
server serializes a batch once per tick with serialize_batch(); the
viewer parses it back with parse_batch(), which raises
pydantic.ValidationError on anything that isn't a JSON array of records.

Timestamps without a timezone are read as UTC so that watermark and
feed comparisons never mix naive and aware datetimes.
"""

from datetime import datetime, timezone
from typing import Sequence, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter, field_validator


class EventRecord(BaseModel):
    """Immutable once fetched. Ordered by occurred_at, id breaks ties."""

    model_config = ConfigDict(frozen=True)

    id: Union[int, str]
    entity_id: str  # ambulance plate
    checkpoint_id: str  # traffic light
    occurred_at: datetime

    @field_validator("occurred_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


_batch_adapter = TypeAdapter(list[EventRecord])


def serialize_batch(records: Sequence[EventRecord]) -> str:
    """Encode a batch as a UTF-8 JSON array with ISO-8601 timestamps."""
    return _batch_adapter.dump_json(list(records)).decode("utf-8")


def parse_batch(payload: Union[str, bytes]) -> list[EventRecord]:
    """Decode a pushed frame. Raises pydantic.ValidationError if malformed."""
    return _batch_adapter.validate_json(payload)
