"""
Utility functions for the application.
"""
import re
from typing import Optional, Union

_NON_DIGITS = re.compile(r"\D")


def to_gid(resource: str, value: Union[str, int]) -> str:
    """Return a Shopify global id, leaving values that already are one untouched."""
    value = str(value)
    if value.startswith("gid://"):
        return value
    return f"gid://shopify/{resource}/{value}"


def gid_to_id(gid: Optional[str]) -> Optional[str]:
    """'gid://shopify/ProductVariant/123' -> '123'"""
    if not gid:
        return None
    return str(gid).rstrip("/").split("/")[-1]


def first_words(text: Optional[str], count: int = 3) -> str:
    if not text:
        return ""
    return " ".join(text.split()[:count])


def parse_int_field(value: Optional[str]) -> Optional[int]:
    """
    Parse a custom field value leniently ("5", "5 units", "5.0").

    Returns None when the value is unset or holds no digits.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        digits = _NON_DIGITS.sub("", text)
        return int(digits) if digits else None


def parse_bool_field(value: Optional[str]) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in ("true", "1", "yes")
