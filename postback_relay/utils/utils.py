"""Misc cross-cutting helpers."""

from __future__ import annotations

import math
import os
import re
from decimal import Decimal

# Leading decimal literal accepted by TimeWall's ``parseFloat`` step.
_FLOAT_PREFIX = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def get_env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(int(default))).lower() in {"1", "true", "yes"}


def get_env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def parse_js_float(raw: str | None) -> float | None:
    """Parse *raw* the way ``parseFloat`` does on the sender side.

    The longest leading decimal literal is used and any trailing garbage is
    ignored, so ``"1.5usd"`` yields ``1.5``.  Returns ``None`` for strings
    without a numeric prefix and for infinities.

    Examples:
        >>> parse_js_float("0.50")
        0.5
        >>> parse_js_float("abc") is None
        True
    """
    if raw is None:
        return None
    match = _FLOAT_PREFIX.match(raw.lstrip())
    if not match:
        return None
    value = float(match.group(0).replace("Infinity", "inf"))
    if not math.isfinite(value):
        return None
    return value


def js_number_str(value: float) -> str:
    """Render *value* exactly like ECMAScript ``Number.prototype.toString()``.

    The signature TimeWall sends is computed over this rendering, so it has
    to match byte for byte: shortest round-trip digits, no trailing zeros,
    plain notation while the decimal exponent is in ``[-6, 21)`` and
    ``1e+21`` style outside of it.
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    if value < 0:
        return "-" + js_number_str(-value)

    # repr() already yields the shortest round-trip digit string
    _sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    digit_str = "".join(str(d) for d in digits)
    k = len(digit_str)
    n = k + exponent  # position of the decimal point relative to digit_str

    if k <= n <= 21:
        return digit_str + "0" * (n - k)
    if 0 < n <= 21:
        return digit_str[:n] + "." + digit_str[n:]
    if -6 < n <= 0:
        return "0." + "0" * (-n) + digit_str

    exp = n - 1
    exp_str = f"e+{exp}" if exp >= 0 else f"e-{-exp}"
    if k == 1:
        return digit_str + exp_str
    return digit_str[0] + "." + digit_str[1:] + exp_str
