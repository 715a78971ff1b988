"""Core data model: transcript records, timecode parsing, and CSV loading."""

from replay_broadcaster.core.records import TranscriptFile, TranscriptRecord
from replay_broadcaster.core.timecode import parse_timecode

__all__ = ["TranscriptFile", "TranscriptRecord", "parse_timecode"]
