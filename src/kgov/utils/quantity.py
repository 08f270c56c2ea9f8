"""Kubernetes resource quantity parsing."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping

_BINARY = {
    "Ki": Decimal(2) ** 10,
    "Mi": Decimal(2) ** 20,
    "Gi": Decimal(2) ** 30,
    "Ti": Decimal(2) ** 40,
    "Pi": Decimal(2) ** 50,
    "Ei": Decimal(2) ** 60,
}
_DECIMAL = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "": Decimal(1),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}
_PATTERN = re.compile(r"^([+-]?[0-9.]+(?:[eE][+-]?[0-9]+)?)(Ki|Mi|Gi|Ti|Pi|Ei|[numkMGTPE])?$")


def parse_quantity(value: str | int | float) -> Decimal:
    """Parse a quantity such as ``500m``, ``2Gi`` or ``10`` into a Decimal."""
    text = str(value).strip()
    match = _PATTERN.match(text)
    if not match:
        raise ValueError(f"Invalid quantity: {value!r}")
    number, suffix = match.group(1), match.group(2) or ""
    try:
        base = Decimal(number)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid quantity: {value!r}") from exc
    multiplier = _BINARY.get(suffix) or _DECIMAL[suffix]
    return base * multiplier


def quantities_equal(left: str | int | float, right: str | int | float) -> bool:
    try:
        return parse_quantity(left) == parse_quantity(right)
    except ValueError:
        return str(left) == str(right)


def diff_quantities(desired: Mapping[str, str], current: Mapping[str, str], prefix: str = "") -> Dict[str, tuple]:
    """Return ``{key: (current, desired)}`` for every key that differs.

    Keys present only in ``current`` are reported with a desired value of ``None``.
    """
    changes: Dict[str, tuple] = {}
    for key, want in desired.items():
        have = current.get(key)
        if have is None or not quantities_equal(have, want):
            changes[prefix + key] = (have, str(want))
    for key, have in current.items():
        if key not in desired:
            changes[prefix + key] = (have, None)
    return changes
