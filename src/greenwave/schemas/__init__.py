"""Pydantic schemas for the wire format."""

from greenwave.schemas.event import EventRecord, parse_batch, serialize_batch

__all__ = ["EventRecord", "parse_batch", "serialize_batch"]
