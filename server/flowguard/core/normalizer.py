"""Reading normalizer — turns a loosely-typed device payload into a CompactReading.

The sensor is noisy and its firmware has shipped both long field names
(pulses, rotations, lat, lon) and short ones (p, r, la, lo). Anything that
does not coerce to a number becomes 0; this step never rejects a reading.
"""

from __future__ import annotations

import math

from flowguard.core.models import CompactReading

# Counts are stored as signed 64-bit integers.
_INT_MIN = -(2 ** 63)
_INT_MAX = 2 ** 63 - 1

# (long-form, short-form) field names for each compact field.
_FIELDS = {
    "p": ("pulses", "p"),
    "r": ("rotations", "r"),
    "la": ("lat", "la"),
    "lo": ("lon", "lo"),
}


def _to_float(value: object) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _to_int(value: object) -> int:
    """Out-of-range counts degrade to 0 like any other unusable value."""
    if isinstance(value, int) and not isinstance(value, bool):
        number = value
    else:
        number = int(_to_float(value))
    return number if _INT_MIN <= number <= _INT_MAX else 0


def _pick(raw: dict, long_name: str, short_name: str) -> object:
    """Long-form wins; short-form is only consulted when the long key is absent."""
    if long_name in raw:
        return raw[long_name]
    return raw.get(short_name)


def normalize(raw: dict) -> CompactReading:
    return CompactReading(
        p=_to_int(_pick(raw, *_FIELDS["p"])),
        r=_to_int(_pick(raw, *_FIELDS["r"])),
        la=_to_float(_pick(raw, *_FIELDS["la"])),
        lo=_to_float(_pick(raw, *_FIELDS["lo"])),
    )
