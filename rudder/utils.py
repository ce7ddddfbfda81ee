"""
Rudder utilities shared by descriptors, the registry, the pipeline and the renderers.

Sentinels
- Unset: the value of an option that was not given; None stays a real value.
- coalesce(value, default): Unset -> default, anything else unchanged.

Descriptor plumbing
- rename(callable, name) / @rename(name): stable __name__/__qualname__ for
  generated functions (reprs, completion emitters).
- mirror(name): read-only property over self._<name>, copying containers.

Text helpers
- normalize, parentof, spacejoin, splitcomma, quote: command paths and annotations.
- distance(a, b): case-insensitive Levenshtein distance for suggestions.
- progname(): the program name shown in help and diagnostics.
"""
import builtins
import functools
import json
import os.path
import sys
from collections.abc import Sequence, Mapping, Set
from typing import final


@final
class UnsetType:
    """
    Type of the Unset sentinel.

    Unset is falsy, repr()s as "Unset", cannot be subclassed and is the only
    instance ever built. It joins PEP 604 unions, so isinstance(x, str | Unset)
    reads naturally in option validators.
    """

    def __or__(self, other, /):
        try:
            return type(self) | other
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


Unset = UnsetType()


def coalesce(value, default=None, /):
    """
    Replace Unset by default.

    Falsy values other than Unset (None, 0, "", []) are given options and pass through.

    >>> coalesce(Unset, "tom")
    'tom'
    >>> coalesce("", "tom")
    ''
    """
    return default if value is Unset else value


def rename(*parameters):
    """
    Give a callable a new __name__ and __qualname__.

    rename(fn, name) renames fn and returns it; rename(name) returns a decorator.

    Raises
    - TypeError: wrong arity, a non-string name, or a callable whose names are read-only.
    """
    if len(parameters) == 1:
        name, = parameters
        if not isinstance(name, str):
            raise TypeError("@rename() argument must be a string")
        return rename(lambda target: rename(target, name), "rename")
    if len(parameters) != 2:
        raise TypeError(f"rename() takes 1 or 2 arguments but {len(parameters)} were given")

    target, name = parameters
    if not builtins.callable(target):
        raise TypeError("rename() first argument must be callable")
    if not isinstance(name, str):
        raise TypeError("rename() second argument must be a string")
    try:
        target.__name__ = target.__qualname__ = name
    except (AttributeError, TypeError):
        raise TypeError(f"cannot rename {target!r}") from None
    return target


def _copy(value):
    # detached copy of nested containers; strings and scalars are shared
    if isinstance(value, Mapping):
        return {key: _copy(item) for key, item in value.items()}
    if isinstance(value, Set):
        return {_copy(item) for item in value}
    if isinstance(value, Sequence) and not isinstance(value, str):
        return [_copy(item) for item in value]
    return coalesce(value)


def mirror(name, /):
    """
    Read-only property returning a copy of self._<name>.

    >>> class Flag:
    ...     envs = mirror("envs")
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    def getter(self):
        return _copy(getattr(self, "_" + name))

    return property(rename(getter, name))


def normalize(name, /):
    """
    Collapse a command name into single-space separated words.

    >>> normalize("  git   remote add ")
    'git remote add'
    """
    if not isinstance(name, str):
        raise TypeError("normalize() argument must be a string")
    return " ".join(name.split())


def parentof(parent, child, /):
    """
    Tell whether 'child' is a strict sub-command path of 'parent'.

    The empty name is the parent of every non-empty name.
    """
    if not parent:
        return bool(child)
    return parent != child and child.startswith(parent + " ")


def spacejoin(*parts):
    """Join the trimmed, non-empty parts with a single space."""
    return " ".join(part for part in map(str.strip, parts) if part)


def splitcomma(text, /):
    """
    Split an annotation list ("A, B ,C") into trimmed, non-empty names.

    Iterables of strings are accepted as well and trimmed the same way.
    """
    if isinstance(text, str):
        text = text.split(",")
    return [item for item in map(str.strip, text) if item]


def quote(text, /):
    """
    Double-quote a string the way diagnostics show user input.

    Lists are rendered as a bracketed, space-separated sequence of quoted items.

    >>> quote('say "hi"')
    '"say \\"hi\\""'
    >>> quote(["a", "b"])
    '["a" "b"]'
    """
    if isinstance(text, str):
        return json.dumps(text, ensure_ascii=False)
    return "[" + " ".join(map(quote, text)) + "]"


def distance(source, target, /):
    """
    Case-insensitive Levenshtein distance between two strings.

    >>> distance("aapi", "API")
    1
    """
    source = source.lower()
    target = target.lower()
    previous = list(range(len(target) + 1))
    for i, left in enumerate(source, 1):
        current = [i]
        for j, right in enumerate(target, 1):
            if left == right:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j], current[j - 1], previous[j - 1]) + 1)
        previous = current
    return previous[-1]


def progname():
    """
    Return the displayed program name.

    The host application may define __prog__ in __main__; otherwise the
    basename of sys.argv[0] is used.
    """
    main = __import__("__main__")
    if prog := getattr(main, "__prog__", None):
        return prog
    return os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "program"


__all__ = (
    "UnsetType",
    "Unset",
    "coalesce",
    "rename",
    "mirror",
    "normalize",
    "parentof",
    "spacejoin",
    "splitcomma",
    "quote",
    "distance",
    "progname",
)
