"""
ContractMock Common Utilities

Small helpers shared by the contract loader, the mock engine and the server.
"""

import json
import re
from typing import Any, Optional, Union


_INTEGER_TEXT = re.compile(r'^[+-]?\d+$')


def safe_json_parse(raw: Union[str, bytes, None], default: Any = None) -> Any:
    """
    Safely parse a JSON string or byte payload.

    Args:
        raw: JSON text or bytes (e.g. a request body)
        default: Value to return if the payload is empty or invalid

    Returns:
        Parsed JSON value, or default if parsing fails

    Example:
        body = safe_json_parse(await request.body(), default={})
    """
    if not raw:
        return default

    try:
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError, ValueError):
        return default


def coerce_int(value: Any) -> Optional[int]:
    """
    Strictly convert an id-like value to int.

    Accepts ints and integer text ("7", "-3"); rejects booleans, floats with a
    fractional part, and anything else.

    Returns:
        The integer, or None when the value is not integer-like
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and _INTEGER_TEXT.match(value.strip()):
        return int(value.strip())
    return None


def singularize(word: str) -> str:
    """
    Naive English singular form for resource names.

    Example:
        singularize("categories")  # "category"
        singularize("products")    # "product"
    """
    if word.endswith('ies'):
        return word[:-3] + 'y'
    if word.endswith('s'):
        return word[:-1]
    return word
