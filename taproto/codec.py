"""
Binary codec for Packets.

Packets travel as compact, key-sorted JSON encoded to UTF-8 and are sent as
binary websocket frames. Anything that does not decode to a well-formed
Packet raises DecodeError.
"""

from __future__ import annotations
import json

from taproto.packets import Packet


class DecodeError(Exception):
    """Raised when an inbound frame is not a well-formed Packet."""
    pass


def encode(packet: Packet) -> bytes:
    return json.dumps(packet.to_dict(), separators=(',', ':'), sort_keys=True).encode("utf-8")


def decode(data: bytes) -> Packet:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise DecodeError(f"Expected a binary frame, got {type(data).__name__}")
    try:
        text = bytes(data).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Frame is not valid UTF-8: {e}")
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, RecursionError) as e:
        raise DecodeError(f"Invalid JSON: {e}")
    if not isinstance(raw, dict):
        raise DecodeError("Packet root must be an object")
    try:
        return Packet.from_dict(raw)
    except (ValueError, TypeError, RecursionError) as e:
        raise DecodeError(str(e))
