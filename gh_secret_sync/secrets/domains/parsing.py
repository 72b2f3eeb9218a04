"""Parsing of desired secret/variable mappings from CLI or environment input."""
import json
import logging
from typing import Dict

from .errors import ParseError

logger = logging.getLogger(__name__)


def parse_key_value_pairs(raw: str) -> Dict[str, str]:
    """
    Parse a desired mapping from text.

    Two formats are accepted:
    1. Newline-separated KEY=VALUE pairs. Key and value are trimmed, the first
       '=' splits them (values may contain '='), blank lines are ignored.
    2. A JSON object of string values, detected when the trimmed input starts
       with '{' and ends with '}'. Values are kept verbatim so multi-line
       material such as certificates survives.

    Keys are upper-cased in both formats.

    Args:
        raw: Input text; empty or whitespace-only input yields an empty mapping

    Returns:
        Mapping of upper-cased entry names to values

    Raises:
        ParseError: On a malformed line, empty key or value, non-string JSON
            value, or a name that repeats after upper-casing
    """
    if not raw or not raw.strip():
        return {}

    trimmed = raw.strip()
    if trimmed.startswith("{") and trimmed.endswith("}"):
        return _parse_json_pairs(trimmed)

    mapping: Dict[str, str] = {}
    for line in raw.split("\n"):
        line = line.strip()
        if not line:
            continue
        key, sep, value = line.partition("=")
        if not sep:
            # Only the key is echoed; the line may be a secret value
            raise ParseError(
                f"malformed entry, does not contain a KEY=VALUE pair: {key[:20]!r} "
                "(note: if you see '***', GitHub Actions may be masking the value - check your input format)"
            )
        key, value = key.strip(), value.strip()
        if not key or not value:
            raise ParseError(f"malformed entry, key or value is empty: {key or '<empty key>'}")
        _store(mapping, key, value)

    logger.debug(f"Parsed {len(mapping)} KEY=VALUE entries")
    return mapping


def _parse_json_pairs(text: str) -> Dict[str, str]:
    try:
        raw_pairs = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"failed to parse JSON entries: {e}") from e

    if not isinstance(raw_pairs, dict):
        raise ParseError("JSON entries must be an object of name/value pairs")

    mapping: Dict[str, str] = {}
    for key, value in raw_pairs.items():
        key = key.strip()
        if not key:
            raise ParseError("malformed JSON entry: key is empty")
        if not isinstance(value, str):
            raise ParseError(f"malformed JSON entry: value for key {key} must be a string")
        if value == "":
            raise ParseError(f"malformed JSON entry: value is empty for key {key}")
        _store(mapping, key, value)

    logger.debug(f"Parsed {len(mapping)} JSON entries")
    return mapping


def _store(mapping: Dict[str, str], key: str, value: str) -> None:
    name = key.upper()
    if name in mapping:
        raise ParseError(f"duplicate entry name after upper-casing: {name}")
    mapping[name] = value


def merge_mappings(*mappings: Dict[str, str]) -> Dict[str, str]:
    """
    Merge desired mappings, rejecting names defined more than once.

    Raises:
        ParseError: If a name appears in more than one mapping
    """
    merged: Dict[str, str] = {}
    for mapping in mappings:
        for name, value in mapping.items():
            _store(merged, name, value)
    return merged
