"""Typed lookups of environment variables with defaults on absence or parse failure."""

from __future__ import annotations

import logging
import math
import os
import re
from datetime import timedelta
from fractions import Fraction
from typing import Callable, TypeVar

T = TypeVar("T")

_log = logging.getLogger(__name__)

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_INT_RE = re.compile(r"[+-]?[0-9]+", re.ASCII)
_DEC_FLOAT_RE = re.compile(
    r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?", re.ASCII
)
_HEX_FLOAT_RE = re.compile(
    r"[+-]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)[pP][+-]?[0-9]+",
    re.ASCII,
)
_SPECIAL_FLOAT_RE = re.compile(r"[+-]?inf(?:inity)?|nan", re.ASCII | re.IGNORECASE)

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_NANOS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}


def _parse_int(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid integer syntax: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def _parse_float(text: str) -> float:
    if _SPECIAL_FLOAT_RE.fullmatch(text):
        return float(text)
    if _HEX_FLOAT_RE.fullmatch(text):
        value = float.fromhex(text)
    elif _DEC_FLOAT_RE.fullmatch(text):
        value = float(text)
    else:
        raise ValueError(f"invalid float syntax: {text!r}")
    if math.isinf(value):
        raise ValueError(f"float out of range: {text!r}")
    return value


def _parse_bool(text: str) -> bool:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid boolean syntax: {text!r}")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"300ms"``, ``"-1.5h"`` or ``"2h45m"``.

    Valid units are ns, us (or µs), ms, s, m and h. Precision below one
    microsecond is truncated.
    """
    original = text
    negative = False
    if text[:1] in ("+", "-"):
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration: {original!r}")

    total = Fraction(0)
    while text:
        match = re.match(r"([0-9]*)(?:\.([0-9]*))?", text, re.ASCII)
        whole, frac = match.group(1), match.group(2)
        if not whole and not frac:
            raise ValueError(f"invalid duration: {original!r}")
        text = text[match.end():]
        unit_match = re.match(r"[^0-9.]+", text)
        if unit_match is None:
            raise ValueError(f"missing unit in duration: {original!r}")
        unit = unit_match.group(0)
        text = text[unit_match.end():]
        if unit not in _NANOS_PER_UNIT:
            raise ValueError(f"unknown unit {unit!r} in duration: {original!r}")
        amount = Fraction(int(whole or "0"))
        if frac:
            amount += Fraction(int(frac), 10 ** len(frac))
        total += amount * _NANOS_PER_UNIT[unit]
        if total > _INT64_MAX + (1 if negative else 0):
            raise ValueError(f"invalid duration: {original!r}")

    nanos = int(total)
    micros = nanos // 1000
    return -timedelta(microseconds=micros) if negative else timedelta(microseconds=micros)


def _get_env(
    key: str,
    default_val: T,
    parser: Callable[[str], T],
    type_name: str,
    logger: logging.Logger | None,
) -> T:
    log = logger or _log
    raw = os.environ.get(key)
    if raw is None:
        log.info(
            "Environment variable not set, using default value key=%s defaultValue=%r",
            key,
            default_val,
        )
        return default_val
    try:
        value = parser(raw)
    except ValueError as exc:
        log.info(
            "Failed to parse environment variable as %s, using default value "
            "key=%s rawValue=%r error=%s defaultValue=%r",
            type_name,
            key,
            raw,
            exc,
            default_val,
        )
        return default_val
    log.info("Successfully loaded environment variable key=%s value=%r", key, value)
    return value


def get_env_float(key: str, default_val: float, logger: logging.Logger | None = None) -> float:
    """Read a float from the environment, falling back to ``default_val``."""
    return _get_env(key, default_val, _parse_float, "float", logger)


def get_env_int(key: str, default_val: int, logger: logging.Logger | None = None) -> int:
    """Read an integer from the environment, falling back to ``default_val``."""
    return _get_env(key, default_val, _parse_int, "int", logger)


def get_env_duration(
    key: str, default_val: timedelta, logger: logging.Logger | None = None
) -> timedelta:
    """Read a duration from the environment, falling back to ``default_val``."""
    return _get_env(key, default_val, parse_duration, "duration", logger)


def get_env_bool(key: str, default_val: bool, logger: logging.Logger | None = None) -> bool:
    """Read a boolean from the environment, falling back to ``default_val``."""
    return _get_env(key, default_val, _parse_bool, "bool", logger)


def get_env_string(key: str, default_val: str, logger: logging.Logger | None = None) -> str:
    """Read a string from the environment, falling back to ``default_val`` only when unset."""
    return _get_env(key, default_val, str, "str", logger)