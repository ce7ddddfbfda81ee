r"""
Rudder argument descriptors and the declaration front-end.

Overview
- Declarations
  • cli(tag, default=..., env=..., complete=...): annotate a dataclass field as a flag
    or a positional argument. The tag grammar is "[#MODIFIERS,] [-s,] [--long] [description]".
  • A tag of "-" skips the field; fields starting with "_" are never bound; fields whose
    type is itself a dataclass are traversed so shared flag records can be embedded.

- Descriptors
  • Argument: one bound flag or positional argument. It owns the parsed tag metadata,
    the value codec of the slot type and a handle (record, attribute) into the user record.

- Traversal
  • extract(record): walk a record and return (flags, positionals), flags sorted by
    lower-cased name unless keeporder is requested, positionals in declaration order.

Tag grammar
- "#RHD"  modifiers: R required, H hidden, D deprecated (unknown letters are ignored).
- "-s"    short name (a single character after the dashes).
- "--name" or "-name"  long name; trailing words after whitespace become the description.
- "name"  a bare word instead of a short name declares a positional argument.
- the remaining text (commas preserved) is the description; a `back-quoted` or
  'single-quoted' word inside it names the value in help.

Validation (ProgrammingError, raised while extracting)
- the tag yields no name; a positional is hidden; H+R or D+R are combined;
- the slot type is unsupported; a list/dict slot declares a default or env names;
- the default literal cannot be parsed; a positional follows a list/dict positional;
- two descriptors claim the same flag name.

Quick example:
    >>> from dataclasses import dataclass
    >>> from rudder import cli
    >>> @dataclass
    ... class Args:
    ...     name: str = cli("-n, --name, Who do you want to say to", default="tom")
    ...     text: str = cli("#R, text, The 'message' you want to send")
    ...
"""
import dataclasses
import functools
import operator
import re
import typing
from collections.abc import Iterable

from .faults import ProgrammingError
from .utils import *
from .values import OptionalCodec, StrCodec, isrecord, resolve

_MODIFIERS = {
    "D": "deprecated",
    "H": "hidden",
    "R": "required",
}


class ArgumentType(type):
    """
    Metaclass that gives descriptors a stable, introspectable shape.

    Responsibilities
    - Derive __typename__ from the class name (camel-case split with hyphens).
    - Expose every name listed in __introspectable__ as a read-only property
      mirroring the private "_name" attribute.
    - Provide compact __repr__/__rich_repr__ implementations for diagnostics.
    """
    __introspectable__ = ()

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            })"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in type(self).__introspectable__:
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def cli(tag="", /, *, default=Unset, env=Unset, complete=Unset):
    """
    Declare a dataclass field as a flag or a positional argument.

    Parameters
    - tag: the annotation string (see the module documentation for its grammar).
    - default: textual default applied through the slot's codec when the
      descriptor is built ("1024", "1.5s", "true", ...).
    - env: environment variable names checked in order, as a comma-separated
      string or an iterable of names.
    - complete: key looked up in the parse-time completions mapping when no
      function is registered under the flag or argument name.

    Returns
    - dataclasses.Field: a field defaulting to None; the zero value of the slot
      type is installed when the record is bound.
    """
    if not isinstance(tag, str):
        raise TypeError("cli() 'tag' must be a string")
    if not isinstance(default, str | Unset):
        raise TypeError("cli() 'default' must be a string")
    if not isinstance(env, str | Iterable | Unset):
        raise TypeError("cli() 'env' must be a string or an iterable of strings")
    if isinstance(env, Iterable) and not all(isinstance(name, str) for name in env):
        raise TypeError("cli() 'env' must be a string or an iterable of strings")
    if not isinstance(complete, str | Unset):
        raise TypeError("cli() 'complete' must be a string")
    return dataclasses.field(default=None, metadata={
        "cli": tag,
        "default": default,
        "env": env,
        "cmpl": complete,
    })


def parsetag(tag, /):
    """
    Split a cli tag into its name, short name, description and modifiers.

    The tag is cut into at most four comma-separated segments that are consumed
    by a small state machine (modifier -> short -> long -> description). A
    segment that does not fit the current state is retried by the next one.

    >>> parsetag("#R, -n, --name, Who do you want to say to")["name"]
    'name'
    >>> parsetag("-a2  a2 description")["description"]
    'a2 description'
    """
    metadata = {
        "name": "",
        "short": "",
        "description": "",
        "positional": False,
        "required": False,
        "hidden": False,
        "deprecated": False,
    }
    parts = tag.strip().split(",", 3)
    state = "modifier"
    index = 0
    while index < len(parts) and state != "stop":
        part = parts[index].strip()
        match state:
            case "modifier":
                state = "short"
                if part.startswith("#"):
                    for modifier in part[1:]:
                        if modifier in _MODIFIERS:
                            metadata[_MODIFIERS[modifier]] = True
                    index += 1
            case "short":
                if not part.startswith("-"):
                    state = "description"
                    metadata["positional"] = True
                    metadata["name"] = part
                    index += 1
                    continue
                state = "long"
                if len(part := part.lstrip("-")) == 1:
                    metadata["short"] = part
                    index += 1
            case "long":
                state = "description"
                if part.startswith("-"):
                    # "--name  inline description" puts the words back into the stream
                    name, *remainder = re.split(r"\s+", part.lstrip("-"), maxsplit=1)
                    metadata["name"] = name
                    parts[index:index + 1] = [name, *remainder]
                    index += 1
                    continue
                metadata["name"] = metadata["short"]
            case "description":
                state = "stop"
                metadata["description"] = ",".join(parts[index:]).strip()

    if not metadata["name"]:
        metadata["name"] = metadata["short"]
    if metadata["short"] == metadata["name"]:
        metadata["short"] = ""
    return metadata


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: enforce the declaration rules that do not depend on a value.

    Raises
    - ProgrammingError: empty name, hidden positional, H+R, D+R.
    """
    if not metadata["name"]:
        raise ProgrammingError(f"cannot parse name from cli tag {quote(metadata['tag'])}")

    helpname = _helpname(metadata["name"], metadata["positional"])
    if metadata["hidden"] and metadata["positional"]:
        raise ProgrammingError(f"shall not set an argument to be hidden, {metadata['name']}")
    if metadata["hidden"] and metadata["required"]:
        raise ProgrammingError(f"modifiers H & R shall not be used together, {helpname}")
    if metadata["deprecated"] and metadata["required"]:
        raise ProgrammingError(f"modifiers D & R shall not be used together, {helpname}")

    metadata["envs"] = splitcomma(coalesce(metadata["env"], ()))
    metadata["literal"] = coalesce(metadata["default"], "").strip()
    metadata["complete"] = coalesce(metadata["complete"], "").strip()


def _sanitize_typed_metadata(cls, metadata, codec, /):
    """
    Internal: enforce the declaration rules that depend on the slot codec.

    Raises
    - ProgrammingError: default literal or env names on a list/dict slot.
    """
    helpname = _helpname(metadata["name"], metadata["positional"])
    noun = {"sequence": "slice", "mapping": "map"}.get(codec.kind)
    if noun and metadata["literal"]:
        raise ProgrammingError(f"default value is unsupported for {noun} type, {helpname}")
    if noun and metadata["envs"]:
        raise ProgrammingError(f"env is unsupported for {noun} type, {helpname}")


def _helpname(name, positional, /):
    return f"argument '{name}'" if positional else f"flag '-{name}'"


class Argument(metaclass=ArgumentType):
    """
    A flag or positional argument bound to one slot of a user record.

    The descriptor reads and writes the slot through its codec, so the record
    always holds typed values (ints, lists, timedelta, custom objects, ...).

    Properties
    - The names listed in __introspectable__ are read-only mirrors of the
      sanitized tag metadata.
    - codec: the value codec resolved from the slot annotation.
    - hasdefault: True when the default literal produced a non-zero value.
    """

    __introspectable__ = (
        "name",
        "short",
        "description",
        "literal",
        "envs",
        "complete",
        "positional",
        "required",
        "hidden",
        "deprecated",
        "isglobal",
    )

    def __new__(
            cls,
            tag,
            record,
            attribute,
            annotation,
            /,
            *,
            default=Unset,
            env=Unset,
            complete=Unset,
            isglobal=False
    ):
        metadata = parsetag(tag) | {
            "tag": tag,
            "default": default,
            "env": env,
            "complete": complete,
            "isglobal": bool(isglobal),
        }
        _sanitize_metadata(cls, metadata)

        codec = resolve(annotation)
        _sanitize_typed_metadata(cls, metadata, codec)

        self = super().__new__(cls)
        for name in cls.__introspectable__:
            setattr(self, "_" + name, metadata[name])
        self._record = record
        self._attribute = attribute
        self.codec = codec

        # None in a non-optional slot stands for "not provided"
        if self.value is None and not isinstance(codec, OptionalCodec):
            self.value = codec.zero()

        self.hasdefault = False
        if self.literal:
            try:
                self.set(self.literal)
            except ValueError as error:
                raise ProgrammingError(
                    f"invalid default value {quote(self.literal)} for {self.helpname}: {error}"
                ) from None
            self.hasdefault = not self.iszero()
        return self

    @property
    def value(self):
        """The raw slot value held by the record."""
        return getattr(self._record, self._attribute)

    @value.setter
    def value(self, value):
        setattr(self._record, self._attribute, value)

    @property
    def kind(self):
        return self.codec.kind

    @property
    def boolean(self):
        return self.codec.boolean

    @property
    def composite(self):
        return self.codec.kind in ("sequence", "mapping")

    @property
    def helpname(self):
        return _helpname(self._name, self._positional)

    @property
    def usagename(self):
        return "" if self.codec.boolean else self.codec.usage

    def set(self, text, /):
        """
        Apply one textual value to the slot.

        Empty text leaves the slot untouched. Lists append, dicts merge one
        "key=value" pair, every other type is replaced.

        Raises
        - ValueError: the codec rejected the text (message is the short reason).
        """
        if text == "":
            return
        self.value = self.codec.apply(self.value, text)

    def iszero(self):
        return self.codec.iszero(self.value)

    def format(self):
        """Render the current value ("" for empty lists and dicts, JSON when not)."""
        return self.codec.format(self.value)

    def get(self):
        """Return the current value, unwrapped through get() for custom values."""
        return self.codec.get(self.value)

    def unquote(self):
        """
        Extract the value name from the description.

        A `back-quoted` word wins over a 'single-quoted' one; the quote characters
        are dropped from the returned description. An escaped \\' is kept as a
        literal quote. Without quotes the name comes from the slot type.

        Returns
        - (name, description)
        """
        description = self._description
        if (start := description.find("`")) >= 0 and (end := description.find("`", start + 1)) >= 0:
            name = description[start + 1:end]
            return name, description[:start] + name + description[end + 1:]

        name = ""
        builder = []
        index = 0
        while index < len(description):
            char = description[index]
            if not name and char == "'" and index > 0 and description[index - 1] != "\\":
                if (end := description.find("'", index + 1)) >= 0:
                    name = description[index + 1:end]
                    builder.append(name)
                    index = end + 1
                    continue
            if char == "\\" and index < len(description) - 1 and description[index + 1] == "'":
                builder.append("'")
                index += 2
                continue
            builder.append(char)
            index += 1
        return name or self.usagename, "".join(builder)

    def usage(self, hasshort=False, /):
        """
        Build the two help columns of this descriptor.

        Parameters
        - hasshort: whether any visible flag of the block has a short name; long-only
          flags are then indented to line up with "-s, --name" entries.

        Returns
        - (prefix, text): "  -n, --name string (REQUIRED)" and the description
          followed by the default and env annotations.
        """
        if self._positional:
            prefix = "  " + self._name
        elif self._short and self._name:
            prefix = f"  -{self._short}, --{self._name}"
        elif len(self._name) == 1 or not hasshort:
            prefix = f"  -{self._name}"
        else:
            prefix = f"      --{self._name}"

        name, text = self.unquote()
        if name:
            prefix += " " + name

        modifiers = [
            label for label, enabled in (
                ("REQUIRED", self._required),
                ("DEPRECATED", self._deprecated),
                ("HIDDEN", self._hidden),
            ) if enabled
        ]
        if modifiers:
            prefix += f" ({', '.join(modifiers)})"

        if self.hasdefault:
            if isinstance(self.codec, StrCodec):
                text = spacejoin(text, f"(default {quote(self._literal)})")
            else:
                text = spacejoin(text, f"(default {self._literal})")
        if self._envs:
            text = spacejoin(text, '(env "' + '", "'.join(self._envs) + '")')
        return prefix, text


def _traverse(record, isglobal, flags, positionals, /):
    try:
        hints = typing.get_type_hints(type(record))
    except NameError as error:
        raise ProgrammingError(f"cannot resolve annotations of {type(record).__name__}: {error}") from None
    for field in dataclasses.fields(record):
        if field.name.startswith("_"):
            continue
        tag = field.metadata.get("cli", "").strip()
        if tag.split(",")[0].strip() == "-":
            continue

        annotation = hints[field.name]
        if isrecord(annotation):
            if (nested := getattr(record, field.name)) is None:
                setattr(record, field.name, nested := annotation())
            _traverse(nested, isglobal, flags, positionals)
            continue
        if not tag:
            continue

        argument = Argument(
            tag,
            record,
            field.name,
            annotation,
            default=field.metadata.get("default", Unset),
            env=field.metadata.get("env", Unset),
            complete=field.metadata.get("cmpl", Unset),
            isglobal=isglobal,
        )
        (positionals if argument.positional else flags).append(argument)


def extract(record, /, *, isglobal=False, keeporder=False):
    """
    Build the descriptors of a record instance.

    Parameters
    - record: a dataclass instance; nested dataclass fields are created when missing.
    - isglobal: mark every descriptor as an application-wide flag.
    - keeporder: keep flags in declaration order instead of sorting by lower-cased name.

    Returns
    - (flags, positionals)

    Raises
    - ProgrammingError: for any ill-formed declaration.
    """
    if not dataclasses.is_dataclass(record) or isinstance(record, type):
        raise ProgrammingError(f"args must be a dataclass instance, got {type(record).__name__}")

    flags, positionals = [], []
    _traverse(record, isglobal, flags, positionals)

    composite = None
    for argument in positionals:
        if composite is not None:
            raise ProgrammingError(
                f"{argument.helpname} after composite type {composite.helpname} will never get a value, "
                f"you may define it as a flag"
            )
        if argument.composite:
            composite = argument

    if not keeporder:
        flags.sort(key=lambda argument: argument.name.lower())
    return flags, positionals


__all__ = (
    "Argument",
    "cli",
    "parsetag",
    "extract",
)

del ArgumentType
