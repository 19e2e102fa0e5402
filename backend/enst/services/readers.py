"""
readers.py

Purpose:
  File boundary: NDJSON (plain or gzip), power CSV exports, directory
  discovery, and writers for the outputs.

Malformed lines are logged with path:line and skipped. A missing file is the
caller's problem (FileNotFoundError propagates).
"""
from __future__ import annotations

import csv
import gzip
import json
import logging
import os
import re
from typing import Any, Dict, Iterable, Iterator, List, Sequence, TextIO, Tuple

from pydantic import BaseModel

from enst.models.domain import TsvRecord
from enst.services.ingest import coerce_float, parse_tsv_record

logger = logging.getLogger(__name__)

_HEADER_CLEAN = re.compile(r"[^a-z0-9_]")


def _open_text(path: str) -> TextIO:
    # Undecodable bytes become U+FFFD so one bad line fails JSON parsing alone.
    if path.endswith(".gz"):
        return gzip.open(path, "rt", encoding="utf-8", errors="replace")
    return open(path, "r", encoding="utf-8", errors="replace")


def _iter_ndjson(path: str) -> Iterator[Tuple[int, Dict[str, Any]]]:
    """Yields (file line number, object)."""
    with _open_text(path) as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("%s:%d: skipping malformed JSON (%s)", path, lineno, e.msg)
                continue
            if not isinstance(obj, dict):
                logger.warning("%s:%d: skipping non-object JSON line", path, lineno)
                continue
            yield lineno, obj


def read_ndjson(path: str) -> Iterator[Dict[str, Any]]:
    """One JSON object per line; blank lines ignored."""
    for _lineno, obj in _iter_ndjson(path):
        yield obj


def normalize_header(name: str) -> str:
    return _HEADER_CLEAN.sub("_", name.strip().lower())


def read_power_csv(path: str) -> Iterator[Dict[str, Any]]:
    """
    Header row is normalised to snake_case; numeric cells become floats,
    everything else stays a string.
    """
    with _open_text(path) as f:
        reader = csv.reader(f)
        headers: List[str] = []
        for row in reader:
            if not row or all(not cell.strip() for cell in row):
                continue
            if not headers:
                headers = [normalize_header(h) for h in row]
                continue
            if len(row) != len(headers):
                logger.warning(
                    "%s:%d: expected %d columns, got %d", path, reader.line_num, len(headers), len(row)
                )
            record: Dict[str, Any] = {}
            for name, cell in zip(headers, row):
                cell = cell.strip()
                num = coerce_float(cell) if cell else None
                record[name] = num if num is not None else cell
            yield record


def read_records(path: str) -> Iterator[Dict[str, Any]]:
    if path.lower().endswith(".csv"):
        return read_power_csv(path)
    return read_ndjson(path)


def discover_files(root: str, keywords: Sequence[str], suffixes: Sequence[str]) -> List[str]:
    """
    Recursive; a file matches when its lower-cased name contains any keyword
    and ends with any suffix. Returns a sorted list; a missing root gives [].
    """
    if not os.path.isdir(root):
        return []
    matches = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            name = filename.lower()
            if any(k in name for k in keywords) and name.endswith(tuple(suffixes)):
                matches.append(os.path.join(dirpath, filename))
    return sorted(matches)


def load_tsv_records(path: str) -> List[TsvRecord]:
    records = []
    for lineno, raw in _iter_ndjson(path):
        record = parse_tsv_record(raw)
        if record is None:
            logger.warning("%s:%d: skipping invalid TSV record", path, lineno)
            continue
        records.append(record)
    return records


def _as_json(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    return obj


def write_ndjson(path: str, rows: Iterable[Any]) -> int:
    count = 0
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for row in rows:
            f.write(json.dumps(_as_json(row)))
            f.write("\n")
            count += 1
    return count


def write_text(path: str, text: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
