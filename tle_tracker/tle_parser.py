"""
TLE Parser Module

Parses Two-Line Element sets from CelesTrak text and GP JSON payloads and
extracts orbital parameters from their fixed NORAD columns.

Column ranges below are 1-indexed as in the NORAD TLE format description;
the slices are the equivalent 0-indexed half-open ranges.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import MalformedTLE, MissingTLELines
from .models import TLE, OrbitElements

TLE_LINE_LENGTH = 69

TLEFilter = Callable[[List[TLE]], List[TLE]]

_NAME_KEYS = ("object_name", "objectname", "object")
_NORAD_KEYS = ("norad_cat_id", "noradcatid", "norad_id")
_EPOCH_KEYS = ("epoch",)
_LINE1_KEYS = ("tle_line1", "tle_line_1", "tle1", "line1")
_LINE2_KEYS = ("tle_line2", "tle_line_2", "tle2", "line2")


def parse_tle_text(text: str) -> List[TLE]:
    """
    Parse 2-line and 3-line TLE text into TLE records.

    Blank lines are ignored. A line starting with "1 " opens a 2-line record;
    anything else is taken as the name line of a 3-line record.

    Args:
        text: Raw TLE text

    Returns:
        Parsed TLE records in input order

    Raises:
        MalformedTLE: If a record grouping is broken or a data line is short.
            ``at_line`` is the index among non-blank lines.
    """
    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if line]

    results: List[TLE] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("1 "):
            if i + 1 >= len(lines):
                raise MalformedTLE(i, "Missing line 2 for 2-line TLE")
            line2 = lines[i + 1]
            if not line2.startswith("2 "):
                raise MalformedTLE(i + 1, "Expected line 2 to start with '2 '")
            _check_length(line, i)
            _check_length(line2, i + 1)
            results.append(TLE(name=None, line1=line, line2=line2))
            i += 2
        else:
            if i + 2 >= len(lines):
                raise MalformedTLE(i, "Incomplete 3-line TLE block")
            line1 = lines[i + 1]
            line2 = lines[i + 2]
            if not line1.startswith("1 "):
                raise MalformedTLE(i + 1, "Expected line 1 to start with '1 '")
            if not line2.startswith("2 "):
                raise MalformedTLE(i + 2, "Expected line 2 to start with '2 '")
            _check_length(line1, i + 1)
            _check_length(line2, i + 2)
            results.append(TLE(name=line, line1=line1, line2=line2))
            i += 3

    return results


def _check_length(line: str, index: int):
    if len(line) < TLE_LINE_LENGTH:
        raise MalformedTLE(
            index, f"Expected {TLE_LINE_LENGTH} columns, found {len(line)}"
        )


def format_tle_text(tles: Iterable[TLE]) -> str:
    """Serialize TLEs back to text, emitting a name line when present."""
    lines: List[str] = []
    for tle in tles:
        if tle.name:
            lines.append(tle.name)
        lines.append(tle.line1)
        lines.append(tle.line2)
    return "\n".join(lines) + ("\n" if lines else "")


def decode_json_payload(payload: bytes) -> List[TLE]:
    """
    Decode a CelesTrak GP JSON array into TLE records.

    Keys are matched case-insensitively; when the server repeats a key with
    different casing the first one seen wins. Records without a name or
    without both TLE lines are skipped.

    Raises:
        MalformedTLE: If the payload is not a JSON array of objects
        MissingTLELines: If no record carries usable TLE lines
    """
    try:
        records = json.loads(payload)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedTLE(0, f"Invalid JSON payload: {e}") from e

    if not isinstance(records, list):
        raise MalformedTLE(0, "Expected a JSON array of GP records")

    tles: List[TLE] = []
    for record in records:
        if not isinstance(record, dict):
            continue
        tle = _record_to_tle(record)
        if tle is not None:
            tles.append(tle)

    if not tles:
        raise MissingTLELines()
    return tles


def decode_gp_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """Resolve the GP fields of one JSON record into a normalized dict."""
    key_map: Dict[str, str] = {}
    for key in record:
        key_map.setdefault(str(key).lower(), key)

    return {
        "name": _lookup_string(record, key_map, _NAME_KEYS),
        "norad_id": _lookup_int(record, key_map, _NORAD_KEYS),
        "epoch": _lookup_string(record, key_map, _EPOCH_KEYS),
        "line1": _lookup_string(record, key_map, _LINE1_KEYS),
        "line2": _lookup_string(record, key_map, _LINE2_KEYS),
    }


def _record_to_tle(record: Dict[str, Any]) -> Optional[TLE]:
    fields = decode_gp_record(record)
    if fields["name"] is None or fields["line1"] is None or fields["line2"] is None:
        return None
    return TLE(name=fields["name"], line1=fields["line1"], line2=fields["line2"])


def _lookup_string(record, key_map, keys) -> Optional[str]:
    for key in keys:
        original = key_map.get(key)
        if original is not None and isinstance(record[original], str):
            return record[original]
    return None


def _lookup_int(record, key_map, keys) -> Optional[int]:
    for key in keys:
        original = key_map.get(key)
        if original is None:
            continue
        value = record[original]
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return None
    return None


def parse_tles(payload: bytes, content_type: str) -> List[TLE]:
    """Parse a cached or fetched payload according to its content type."""
    if content_type.startswith("application/json"):
        return decode_json_payload(payload)
    return parse_tle_text(payload.decode("utf-8", errors="replace"))


def parse_norad_id(line1: str) -> Optional[int]:
    """Read the catalog number from columns 3-7 of line 1."""
    if len(line1) < 7:
        return None
    try:
        return int(line1[2:7].strip())
    except ValueError:
        return None


def _column_float(line: str, start: int, end: int) -> Optional[float]:
    # start/end are 1-indexed inclusive columns
    if len(line) < end:
        return None
    try:
        return float(line[start - 1:end].strip())
    except ValueError:
        return None


def parse_inclination(line2: str) -> Optional[float]:
    return _column_float(line2, 9, 16)


def parse_raan(line2: str) -> Optional[float]:
    return _column_float(line2, 18, 25)


def parse_eccentricity(line2: str) -> Optional[float]:
    """Eccentricity from columns 27-33 with an implied leading decimal point."""
    if len(line2) < 33:
        return None
    digits = line2[26:33].strip()
    if not (digits.isascii() and digits.isdigit()):
        return None
    return int(digits) / 1e7


def parse_argument_of_perigee(line2: str) -> Optional[float]:
    return _column_float(line2, 35, 42)


def parse_mean_anomaly(line2: str) -> Optional[float]:
    return _column_float(line2, 44, 51)


def parse_mean_motion(line2: str) -> Optional[float]:
    """Mean motion in revolutions per day (columns 53-63)."""
    return _column_float(line2, 53, 63)


def parse_orbit_elements(line2: str) -> Optional[OrbitElements]:
    """Parse all line-2 elements, or None if any field is unavailable."""
    values = {
        "inclination": parse_inclination(line2),
        "raan": parse_raan(line2),
        "eccentricity": parse_eccentricity(line2),
        "argument_of_perigee": parse_argument_of_perigee(line2),
        "mean_anomaly": parse_mean_anomaly(line2),
        "mean_motion": parse_mean_motion(line2),
    }
    if any(value is None for value in values.values()):
        return None
    return OrbitElements(**values)


def parse_epoch(line1: str) -> Optional[datetime]:
    """
    Parse the element epoch from columns 19-32 of line 1.

    Two-digit years use the NORAD pivot: 57-99 are 1900s, 00-56 are 2000s.
    """
    if len(line1) < 32:
        return None
    try:
        epoch_year = int(line1[18:20])
        epoch_days = float(line1[20:32])
    except ValueError:
        return None
    if epoch_days < 1.0:
        return None

    year = 1900 + epoch_year if epoch_year >= 57 else 2000 + epoch_year
    return datetime(year, 1, 1, tzinfo=timezone.utc) + timedelta(days=epoch_days - 1.0)


def exclude_debris(tles: List[TLE]) -> List[TLE]:
    """Drop entries whose name marks them as debris; unnamed entries are kept."""
    return [tle for tle in tles if tle.name is None or "DEB" not in tle.name.upper()]
