"""CSV transcript loading.

WHY: Recorded transcripts arrive as CSV exports with a header row. The
replay engine only understands ordered TranscriptRecord sequences, so
this module is the single place where files become records.

HOW: csv.DictReader reads each file. The time column is located by one
of several historical header names. load_all_transcripts() scans the
transcript directory for the listing endpoint.

RULES:
- Header row is required; columns are matched case-insensitively
- Time column may be named "time_code", "time" or "seconds"
- "speaker" and "sentence" columns are required
- Row order is preserved exactly (the engine never reorders)
- Filenames must not escape the transcript directory
- csv module errors and invalid UTF-8 surface as TranscriptFormatError
- Unreadable files are skipped by load_all_transcripts() (logged), but
  raise from load_transcript()
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from replay_broadcaster.config import TRANSCRIPT_SUFFIX
from replay_broadcaster.core.records import TranscriptFile, TranscriptRecord

logger = logging.getLogger(__name__)

TIME_COLUMNS = ("time_code", "time", "seconds")


class TranscriptNotFoundError(FileNotFoundError):
    """Raised when a requested transcript file does not exist."""


class TranscriptFormatError(ValueError):
    """Raised when a transcript file cannot be parsed into records.

    RULES:
    - Message names the file and, where known, the offending line
    """


def resolve_transcript_path(transcript_dir: Union[str, Path], filename: str) -> Path:
    """Return the on-disk path of a transcript, rejecting traversal.

    Raises:
        TranscriptNotFoundError: filename is unsafe or the file is missing.
    """
    if not filename or "/" in filename or "\\" in filename or ".." in filename:
        raise TranscriptNotFoundError("Invalid transcript filename: {!r}".format(filename))

    path = Path(transcript_dir) / filename
    if not path.is_file():
        raise TranscriptNotFoundError("Transcript not found: {}".format(filename))
    return path


def _column_map(fieldnames: Optional[List[str]], path: Path) -> Dict[str, str]:
    if not fieldnames:
        raise TranscriptFormatError("{}: missing header row".format(path.name))

    lowered = {name.strip().lower(): name for name in fieldnames if name}
    time_key = next((lowered[c] for c in TIME_COLUMNS if c in lowered), None)
    missing = [c for c in ("speaker", "sentence") if c not in lowered]
    if time_key is None:
        missing.insert(0, "time_code")
    if missing:
        raise TranscriptFormatError(
            "{}: missing column(s): {}".format(path.name, ", ".join(missing))
        )
    return {
        "time_code": time_key,
        "speaker": lowered["speaker"],
        "sentence": lowered["sentence"],
    }


def load_transcript(path: Union[str, Path]) -> List[TranscriptRecord]:
    """Read one CSV transcript into an ordered list of records.

    Args:
        path: Path to the CSV file.

    Returns:
        Records in file order.

    Raises:
        TranscriptFormatError: header or a row is malformed, or the csv
            module rejects the file (bad quoting, oversized field, not UTF-8).
        OSError: the file cannot be read.
    """
    path = Path(path)
    try:
        with open(path, newline="", encoding="utf-8-sig") as f:
            records = _read_rows(csv.DictReader(f), path)
    except (csv.Error, UnicodeDecodeError) as exc:
        raise TranscriptFormatError("{}: {}".format(path.name, exc)) from exc

    return records


def _read_rows(reader: csv.DictReader, path: Path) -> List[TranscriptRecord]:
    records: List[TranscriptRecord] = []
    columns = _column_map(reader.fieldnames, path)
    for row in reader:
        if not any(v for v in row.values() if isinstance(v, str) and v.strip()):
            continue
        values = {key: row.get(col) for key, col in columns.items()}
        if any(v is None for v in values.values()):
            raise TranscriptFormatError(
                "{}: line {} has too few fields".format(path.name, reader.line_num)
            )
        records.append(TranscriptRecord(
            time_code=values["time_code"].strip(),
            speaker=values["speaker"].strip(),
            sentence=values["sentence"].strip(),
        ))

    return records


def load_all_transcripts(transcript_dir: Union[str, Path]) -> List[TranscriptFile]:
    """Load every CSV transcript in a directory, sorted by filename.

    A missing directory yields an empty list.
    """
    directory = Path(transcript_dir)
    if not directory.is_dir():
        return []

    files: List[TranscriptFile] = []
    for path in sorted(directory.iterdir()):
        if path.suffix.lower() != TRANSCRIPT_SUFFIX or not path.is_file():
            continue
        try:
            records = load_transcript(path)
        except (OSError, UnicodeDecodeError, csv.Error, TranscriptFormatError):
            logger.exception("Skipping unreadable transcript %s", path.name)
            continue
        files.append(TranscriptFile(filename=path.name, records=records))

    return files
