"""
Rudder value codec: text <-> typed values for every supported slot type.

Overview
- Leaves
  • bool: true|false|1|0|t|f (case-insensitive).
  • int and the bounded aliases Int8..Int64, Uint..Uint64: decimal digits with an
    optional sign (signed only); out-of-range input is rejected.
  • float: decimal with optional exponent.
  • str: verbatim.
  • Duration (datetime.timedelta): number + unit sequences such as "1.5s", "1h30m", "100ms".
  • custom: any class exposing parse(text); format() or __str__ renders it and an
    optional get() returns the underlying value.
- Containers
  • list[T]: every application appends one parsed element.
  • dict[str, T]: every application parses a "key=value" token (missing "=" yields
    an empty value; repeated keys overwrite).
- Optional
  • T | None: None until a value is applied (the zero is None).

Every codec answers the same questions: kind, zero(), iszero(value),
apply(current, text) -> new value, format(value), get(value) and usage (the
type token shown in help).

Codec errors are ValueError instances whose message is the short reason shown
to users ("parse error", "value out of range", ...).
"""
import builtins
import dataclasses
import functools
import json
import re
import types
import typing
from datetime import timedelta
from decimal import Decimal

from .faults import ProgrammingError

Duration = timedelta


def _bounded(name, lower, upper, /):
    return type(name, (int,), {"__bounds__": (lower, upper), "__module__": __name__})


Int8 = _bounded("Int8", -2 ** 7, 2 ** 7 - 1)
Int16 = _bounded("Int16", -2 ** 15, 2 ** 15 - 1)
Int32 = _bounded("Int32", -2 ** 31, 2 ** 31 - 1)
Int64 = _bounded("Int64", -2 ** 63, 2 ** 63 - 1)
Uint = _bounded("Uint", 0, 2 ** 64 - 1)
Uint8 = _bounded("Uint8", 0, 2 ** 8 - 1)
Uint16 = _bounded("Uint16", 0, 2 ** 16 - 1)
Uint32 = _bounded("Uint32", 0, 2 ** 32 - 1)
Uint64 = _bounded("Uint64", 0, 2 ** 64 - 1)

_BOOLEANS = {"1": True, "t": True, "true": True, "0": False, "f": False, "false": False}

_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,  # micro sign
    "μs": 1_000,  # greek small letter mu
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}


def parsebool(text, /):
    try:
        return _BOOLEANS[text.lower()]
    except KeyError:
        raise ValueError("parse error") from None


def parseduration(text, /):
    """
    Parse a duration string such as "300ms", "-1.5h" or "2h45m".

    The result has microsecond resolution; nanosecond input is rounded.
    """
    source = text
    negative = False
    if text[:1] in ("+", "-"):
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not re.fullmatch(r"(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)[^0-9.]+)+", text):
        raise ValueError(f"invalid duration {source!r}")
    nanoseconds = Decimal(0)
    for number, unit in re.findall(r"([0-9]+\.?[0-9]*|\.[0-9]+)([^0-9.]+)", text):
        try:
            nanoseconds += Decimal(number) * _UNITS[unit]
        except KeyError:
            raise ValueError(f"unknown unit {unit!r} in duration {source!r}") from None
    microseconds = nanoseconds / 1000
    return timedelta(microseconds=float(-microseconds if negative else microseconds))


def _fraction(value, precision, /):
    # digits after the point, trailing zeros removed, no point when all zero
    integer, remainder = divmod(value, 10 ** precision)
    digits = str(remainder).rjust(precision, "0").rstrip("0")
    return f"{integer}.{digits}" if digits else str(integer)


def formatduration(value, /):
    """
    Render a timedelta the way duration literals are written ("1h30m0s", "1.5s", "100ms").
    """
    nanoseconds = (value // timedelta(microseconds=1)) * 1000
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    nanoseconds = abs(nanoseconds)
    if nanoseconds < 1_000:
        return f"{sign}{nanoseconds}ns"
    if nanoseconds < 1_000_000:
        return f"{sign}{_fraction(nanoseconds, 3)}µs"
    if nanoseconds < 1_000_000_000:
        return f"{sign}{_fraction(nanoseconds, 6)}ms"
    seconds, fraction = divmod(nanoseconds, 1_000_000_000)
    result = _fraction(seconds % 60 * 1_000_000_000 + fraction, 9) + "s"
    if minutes := seconds // 60:
        result = f"{minutes % 60}m" + result
        if hours := minutes // 60:
            result = f"{hours}h" + result
    return sign + result


def formatfloat(value, /):
    """
    Shortest round-tripping rendering, switching to exponent form for very
    small or large magnitudes (3.0 -> "3", 1e6 -> "1e+06", 0.5 -> "0.5").
    """
    if value != value:
        return "NaN"
    if value in (float("inf"), float("-inf")):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if str(value).startswith("-") else "0"
    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    digits = "".join(map(str, digits))
    point = len(digits) + exponent
    prefix = "-" if sign else ""
    if point - 1 < -4 or point - 1 >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        return f"{prefix}{mantissa}e{point - 1:+03d}"
    if point <= 0:
        return f"{prefix}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return f"{prefix}{digits}{'0' * (point - len(digits))}"
    return f"{prefix}{digits[:point]}.{digits[point:]}"


class Codec:
    """
    Base codec: scalar semantics, subclasses override the pieces that differ.
    """
    kind = "scalar"
    usage = "value"
    boolean = False

    def zero(self):
        raise NotImplementedError

    def parse(self, text, /):
        raise NotImplementedError

    def iszero(self, value, /):
        return value == self.zero()

    def apply(self, current, text, /):
        return self.parse(text)

    def format(self, value, /):
        return str(value)

    def get(self, value, /):
        return value

    def jsonable(self, value, /):
        return value


class BoolCodec(Codec):
    usage = "bool"
    boolean = True

    def zero(self):
        return False

    def parse(self, text, /):
        return parsebool(text)

    def format(self, value, /):
        return "true" if value else "false"


class IntCodec(Codec):
    def __init__(self, lower=Int64.__bounds__[0], upper=Int64.__bounds__[1]):
        self.lower = lower
        self.upper = upper
        self.usage = "uint" if lower == 0 else "int"

    def zero(self):
        return 0

    def parse(self, text, /):
        if not re.fullmatch(r"[0-9]+" if self.lower == 0 else r"[+-]?[0-9]+", text):
            raise ValueError("parse error")
        if not self.lower <= (value := int(text, 10)) <= self.upper:
            raise ValueError("value out of range")
        return value


class FloatCodec(Codec):
    usage = "float"

    def zero(self):
        return 0.0

    def parse(self, text, /):
        if text != text.strip() or "_" in text:
            raise ValueError("parse error")
        try:
            return float(text)
        except ValueError:
            raise ValueError("parse error") from None

    def format(self, value, /):
        return formatfloat(value)


class StrCodec(Codec):
    usage = "string"

    def zero(self):
        return ""

    def parse(self, text, /):
        return text


class DurationCodec(Codec):
    usage = "duration"

    def zero(self):
        return timedelta(0)

    def parse(self, text, /):
        try:
            return parseduration(text)
        except ValueError:
            raise ValueError("parse error") from None

    def format(self, value, /):
        return formatduration(value)

    def jsonable(self, value, /):
        return (value // timedelta(microseconds=1)) * 1000


class CustomCodec(Codec):
    """
    Codec for user value classes implementing parse(text) and format()/__str__.
    """
    kind = "custom"

    def __init__(self, type, /):
        self.type = type
        self.boolean = bool(getattr(type, "__boolean__", False))

    def zero(self):
        return self.type()

    def parse(self, text, /):
        value = self.type()
        value.parse(text)
        return value

    def iszero(self, value, /):
        return self.format(value) == self.format(self.zero())

    def apply(self, current, text, /):
        if current is None:
            current = self.type()
        current.parse(text)
        return current

    def format(self, value, /):
        if value is None:
            return ""
        if callable(format := getattr(value, "format", None)):
            return format()
        return str(value)

    def get(self, value, /):
        if callable(get := getattr(value, "get", None)):
            return get()
        return value

    def jsonable(self, value, /):
        return self.format(value)


class OptionalCodec(Codec):
    """
    Pointer-like slots: None until a value is applied.
    """

    def __init__(self, element, /):
        self.element = element
        self.kind = element.kind
        self.usage = element.usage
        self.boolean = element.boolean

    def zero(self):
        return None

    def iszero(self, value, /):
        return value is None

    def parse(self, text, /):
        return self.element.parse(text)

    def apply(self, current, text, /):
        return self.element.apply(current, text)

    def format(self, value, /):
        return self.element.format(self.element.zero() if value is None else value)

    def get(self, value, /):
        return self.element.get(self.element.zero() if value is None else value)


class SequenceCodec(Codec):
    kind = "sequence"

    def __init__(self, element, /):
        self.element = element
        self.usage = "[]" + element.usage

    def zero(self):
        return []

    def iszero(self, value, /):
        return not value

    def parse(self, text, /):
        return [self.element.parse(text)]

    def apply(self, current, text, /):
        return [*(current or ()), self.element.parse(text)]

    def format(self, value, /):
        if not value:
            return ""
        return json.dumps(list(map(self.element.jsonable, value)), separators=(",", ":"), ensure_ascii=False)


class MappingCodec(Codec):
    kind = "mapping"

    def __init__(self, element, /):
        self.element = element
        self.usage = "map[string]" + element.usage

    def zero(self):
        return {}

    def iszero(self, value, /):
        return not value

    def parse(self, text, /):
        key, _, value = text.partition("=")
        return {key: self.element.parse(value)}

    def apply(self, current, text, /):
        return {**(current or {}), **self.parse(text)}

    def format(self, value, /):
        if not value:
            return ""
        return json.dumps(
            {key: self.element.jsonable(item) for key, item in sorted(value.items())},
            separators=(",", ":"),
            ensure_ascii=False
        )


def iscustom(type, /):
    """Tell whether a class implements the custom value protocol."""
    return isinstance(type, builtins.type) and callable(getattr(type, "parse", None))


def _leaf(annotation, /):
    if annotation is bool:
        return BoolCodec()
    if isinstance(annotation, builtins.type) and issubclass(annotation, int) and hasattr(annotation, "__bounds__"):
        return IntCodec(*annotation.__bounds__)
    if annotation is int:
        return IntCodec()
    if annotation is float:
        return FloatCodec()
    if annotation is str:
        return StrCodec()
    if annotation is timedelta:
        return DurationCodec()
    if iscustom(annotation):
        return CustomCodec(annotation)
    return None


@functools.cache
def resolve(annotation, /):
    """
    Resolve a type annotation into its codec.

    Raises
    - ProgrammingError: when the annotation is not a supported slot type.
    """
    if (codec := _leaf(annotation)) is not None:
        return codec

    origin = typing.get_origin(annotation)
    arguments = typing.get_args(annotation)

    if origin in (typing.Union, types.UnionType) and len(arguments) == 2 and type(None) in arguments:
        element = next(argument for argument in arguments if argument is not type(None))
        if (codec := _leaf(element)) is not None:
            return OptionalCodec(codec)
    elif origin is list and len(arguments) == 1:
        if (codec := _leaf(arguments[0])) is not None and codec.kind == "scalar":
            return SequenceCodec(codec)
    elif origin is dict and len(arguments) == 2 and arguments[0] is str:
        if (codec := _leaf(arguments[1])) is not None and codec.kind == "scalar":
            return MappingCodec(codec)

    raise ProgrammingError(f"unsupported flag type: {getattr(annotation, '__name__', annotation)!s}")


def isrecord(annotation, /):
    """Tell whether an annotation is a nested record (a dataclass that is not a custom value)."""
    return isinstance(annotation, builtins.type) and dataclasses.is_dataclass(annotation) and not iscustom(annotation)


__all__ = (
    "Duration",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "Uint",
    "Uint8",
    "Uint16",
    "Uint32",
    "Uint64",
    "parsebool",
    "parseduration",
    "formatduration",
    "formatfloat",
)
