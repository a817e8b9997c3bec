"""Type-0 Standard MIDI File encoding.

Layout:
    MThd  len=6  format=0  tracks=1  division=480
    MTrk  len=N
        00 FF 51 03 tt tt tt          tempo (microseconds per quarter)
        <vlq> 90 nn vv / <vlq> 80 nn vv   note on/off pairs
        00 FF 2F 00                   end of track

The declared track length N counts every byte after the length field,
end-of-track included. Output is deterministic for equal input.
"""

import struct
from collections.abc import Iterable, Sequence

from keygroove.midi.theory import NoteEvent, clamp_note

PPQ = 480

NOTE_ON = 0x90
NOTE_OFF = 0x80

# Block note lists (scales, chords, progressions)
BLOCK_VELOCITY_ON = 96
# Timed arpeggio voices
TIMED_VELOCITY_ON = 80
VELOCITY_OFF = 64

_VLQ_MAX = 0x0FFFFFFF
_END_OF_TRACK = b"\x00\xff\x2f\x00"


def encode_vlq(value: int) -> bytes:
    """Variable-length quantity: 7-bit groups, most significant first,
    high bit set on all but the last byte."""
    if value < 0 or value > _VLQ_MAX:
        raise ValueError(f"VLQ value out of range: {value}")
    out = [value & 0x7F]
    value >>= 7
    while value:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    return bytes(reversed(out))


def decode_vlq(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a VLQ starting at *offset*. Returns (value, next_offset)."""
    value = 0
    for i in range(offset, min(offset + 4, len(data))):
        byte = data[i]
        value = (value << 7) | (byte & 0x7F)
        if not byte & 0x80:
            return value, i + 1
    raise ValueError(f"Truncated or oversized VLQ at offset {offset}")


def tempo_microseconds(bpm: float) -> int:
    """Microseconds per quarter note, truncated to fit 24 bits."""
    if bpm <= 0:
        raise ValueError(f"Tempo must be positive, got {bpm}")
    return min(int(60_000_000 // bpm), 0xFFFFFF)


def _header() -> bytes:
    return b"MThd" + struct.pack(">IHHH", 6, 0, 1, PPQ)


def _tempo_event(bpm: float) -> bytes:
    us = tempo_microseconds(bpm)
    return b"\x00\xff\x51\x03" + us.to_bytes(3, "big")


def _wrap_track(events: bytes) -> bytes:
    body = events + _END_OF_TRACK
    return _header() + b"MTrk" + struct.pack(">I", len(body)) + body


def encode_midi(notes: Iterable[int], tempo_bpm: float = 120, note_duration: int = 480) -> bytes:
    """Encode notes played one after another, each lasting *note_duration* ticks.

    Every note starts as the previous one ends.
    """
    if note_duration < 0:
        raise ValueError(f"Note duration must be non-negative, got {note_duration}")
    events = bytearray(_tempo_event(tempo_bpm))
    for note in notes:
        n = clamp_note(note)
        events += encode_vlq(0) + bytes((NOTE_ON, n, BLOCK_VELOCITY_ON))
        events += encode_vlq(note_duration) + bytes((NOTE_OFF, n, VELOCITY_OFF))
    return _wrap_track(bytes(events))


def encode_timed_midi(events: Sequence[NoteEvent], tempo_bpm: float = 120) -> bytes:
    """Encode events with their own start times, merged into one time-ordered stream.

    At equal times note-offs come before note-ons; otherwise input order is kept.
    """
    stream = []
    for order, event in enumerate(events):
        if event.start_time < 0 or event.duration < 0:
            raise ValueError(f"Negative timing in {event}")
        n = clamp_note(event.note)
        stream.append((event.start_time, 1, order, NOTE_ON, n, TIMED_VELOCITY_ON))
        stream.append((event.start_time + event.duration, 0, order, NOTE_OFF, n, VELOCITY_OFF))
    stream.sort(key=lambda e: e[:3])

    out = bytearray(_tempo_event(tempo_bpm))
    now = 0
    for time, _, _, status, note, velocity in stream:
        out += encode_vlq(time - now) + bytes((status, note, velocity))
        now = time
    return _wrap_track(bytes(out))
