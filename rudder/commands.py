"""
Rudder command layer: registered commands and the registry that routes to them.

What this module provides
- Command: a dispatchable unit wrapping a callback. Callbacks come in three shapes:
  • fn(): plain body, parses nothing by itself (it may call rudder.parse()).
  • fn(ctx): receives the Context of the invocation.
  • fn(ctx, args): typed body built by new_command(); the record named by the
    annotation of its second parameter is parsed before the body runs.

- Commands: the ordered registry.
  • search(argv): longest registered name prefix of argv, stopping at the first flag.
  • children(name): sub-commands listed in help, collapsed when there are too many.
  • categories(): level-1 commands partitioned by their category label.
  • suggest(name): close matches for an unknown command path.

Naming
- Names are normalized ("  git   remote " -> "git remote"); the level of a command is
  its number of words. The root command has the empty name and level 0.
"""
import bisect
import dataclasses
import functools
import inspect
import operator
import re
import typing

from .faults import ProgrammingError
from .utils import *

_PLACEHOLDER = "(Use -h to see available sub commands)"

_OPTIONS = {
    "category": str,
    "long_desc": str,
    "examples": str,
    "flag_completion": bool,
    "no_completion": bool,
}


class CommandType(type):
    """
    Metaclass giving Command a stable typename, mirrored read-only properties
    for __introspectable__ and compact __repr__/__rich_repr__ implementations.
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


def _sanitize_options(cls, options, /):
    """
    Internal: validate command options.

    Raises
    - TypeError: unknown option name or value of the wrong type.
    """
    for name, value in options.items():
        if name not in _OPTIONS:
            raise TypeError(f"{cls.__typename__}() got an unexpected option {name!r}")
        if not isinstance(value, _OPTIONS[name]):
            raise TypeError(f"{cls.__typename__} option {name!r} must be a {_OPTIONS[name].__name__}")
    return options


def _signature(callback, /):
    if not callable(callback):
        raise TypeError("command body must be callable")
    try:
        return list(inspect.signature(callback).parameters.values())
    except (TypeError, ValueError):
        return []


class Command(metaclass=CommandType):
    """
    A registered command.

    Properties
    - name, description, aliasof, hidden: registration data (read-only mirrors).
    - index: 1-based registration order; level: number of words in the name.
    - isroot / isgroup / iscompletion: kind of the command.
    - options: command options (category, long_desc, examples, flag_completion, no_completion).
    - record: the record type parsed before a typed body runs, or None.
    - parse_options: parse options forwarded when a typed body parses its record.
    """

    __introspectable__ = (
        "name",
        "description",
        "aliasof",
        "hidden",
    )

    def __init__(self, callback, /, *, record=None, parse_options=None, **options):
        self._callback = callback
        self._name = ""
        self._description = ""
        self._aliasof = ""
        self._hidden = False
        self.index = 0
        self.level = 0
        self.isroot = False
        self.isgroup = False
        self.iscompletion = False
        self.record = record
        self.parse_options = dict(parse_options or {})
        self.options = _sanitize_options(type(self), options)
        self._arity = len(_signature(callback)) if callback is not None else 0

    @classmethod
    def typed(cls, callback, /, **parse_options):
        """
        Build a command whose body receives (ctx, args) with args parsed from
        the record type annotated on its second parameter.

        Raises
        - ProgrammingError: the body does not take two parameters or the
          annotation is not a dataclass.
        """
        parameters = _signature(callback)
        if len(parameters) != 2:
            raise ProgrammingError("new_command() body must accept (ctx, args)")
        try:
            hints = typing.get_type_hints(callback)
        except NameError:
            hints = {}
        record = hints.get(parameters[1].name)
        if not (isinstance(record, type) and dataclasses.is_dataclass(record)):
            raise ProgrammingError("new_command() args type must be a dataclass")
        return cls(callback, record=record, parse_options=parse_options, flag_completion=True)

    def register(self, name, description="", /, *, aliasof="", hidden=False, **options):
        """Bind registration data; command options given here amend earlier ones."""
        self._name = normalize(name)
        self._description = description
        self._aliasof = aliasof
        self._hidden = bool(hidden)
        self.level = len(self._name.split())
        self.options = self.options | _sanitize_options(type(self), options)
        return self

    def clone(self):
        """A copy sharing the body, used for aliases."""
        command = type(self)(self._callback, record=self.record, parse_options=self.parse_options, **self.options)
        command.isgroup = self.isgroup
        return command

    @property
    def category(self):
        return self.options.get("category", "")

    @property
    def callback(self):
        return self._callback

    def invoke(self, context, /):
        """Run the body with the given Context."""
        if self._callback is None:
            return None
        if self.record is not None:
            args = context.parse(self.record, **self.parse_options)
            return self._callback(context, args)
        if self._arity == 0:
            return self._callback()
        return self._callback(context)


@dataclasses.dataclass
class Route:
    """
    Outcome of Commands.search().

    - command: the exactly matched command, None for prefix-only or no match.
    - name: the matched name path ("" when nothing matched).
    - args: tokens left for the command (flags and what follows them).
    - ambiguous: non-flag tokens after the matched path and before the first flag.
    - hassub: the matched path has sub-commands.
    """
    command: Command | None = None
    name: str = ""
    args: list = dataclasses.field(default_factory=list)
    ambiguous: list = dataclasses.field(default_factory=list)
    hassub: bool = False

    @property
    def invalidname(self):
        """The unresolvable command path, "" when the route is valid."""
        if self.command is not None or self.hassub:
            return ""
        return spacejoin(self.name, *self.ambiguous)


def _flagindex(args, /):
    for index, arg in enumerate(args):
        if arg.startswith("-"):
            return index
    return len(args)


class Commands:
    """
    Ordered registry of commands.

    The registry keeps registration order until sort() is called; search()
    expects a sorted registry.
    """

    def __init__(self):
        self._commands = []

    def __iter__(self):
        return iter(self._commands)

    def __len__(self):
        return len(self._commands)

    def __getitem__(self, index):
        return self._commands[index]

    def add(self, command, /):
        """
        Append a registered command.

        Raises
        - ProgrammingError: the name is already registered.
        """
        if any(existing.name == command.name for existing in self._commands):
            raise ProgrammingError(f"command redefined: {command.name!r}")
        command.index = len(self._commands) + 1
        self._commands.append(command)
        return command

    def get(self, name, /):
        name = normalize(name)
        for command in self._commands:
            if command.name == name:
                return command
        return None

    def sort(self, *, byindex=False):
        self._commands.sort(key=operator.attrgetter("index") if byindex else operator.attrgetter("name"))

    def sorted(self, *, byindex=False):
        return sorted(self._commands, key=operator.attrgetter("index") if byindex else operator.attrgetter("name"))

    def isvalid(self, name, /):
        return any(command.name == name or parentof(name, command.name) for command in self._commands)

    def search(self, args, /):
        """
        Resolve the longest command path at the front of args.

        Words are accumulated while they name a command or a parent of one;
        the first flag or the first word that does not extend the path stops
        the walk.

        >>> commands.search(["group1", "cmd3", "sub2"]).invalidname
        'group1 cmd3 sub2'
        """
        names = [command.name for command in self._commands]
        flagindex = _flagindex(args)
        route = Route(args=list(args))
        trying = ""
        ambiguousindex = -1
        for index, arg in enumerate(args):
            if arg.startswith("-"):
                break
            route.args = list(args[index + 1:])
            trying = spacejoin(trying, arg)
            position = bisect.bisect_left(names, trying)
            if position < len(names) and (names[position] == trying or parentof(trying, names[position])):
                route.hassub = True
                ambiguousindex = index + 1
                route.name = trying
                route.command = self._commands[position] if names[position] == trying else None
                continue
            route.hassub = False
            if ambiguousindex == -1:
                ambiguousindex = index
            route.args = list(args[flagindex:])
            break
        if ambiguousindex >= 0:
            route.ambiguous = list(args[ambiguousindex:flagindex])
        return route

    def children(self, name, /, showhidden=False):
        """
        Sub-commands of name to list in help.

        Every descendant is listed; beyond ten entries only the next level is
        kept and deeper paths collapse into placeholder entries.
        """
        children = self._children(name, showhidden, False)
        if len(children) > 10:
            children = self._children(name, showhidden, True)
        return children

    def _children(self, name, showhidden, onlynext, /):
        name = normalize(name)
        level = len(name.split()) + 1
        children = []
        previous = ""
        for command in self._commands:
            if not parentof(name, command.name):
                continue
            if command.hidden and not showhidden:
                continue
            if onlynext:
                if command.level < level:
                    continue
                if command.level > level:
                    parent = " ".join(command.name.split()[:level])
                    if parent == previous:
                        continue
                    command = Command(None).register(parent, _PLACEHOLDER)
            children.append(command)
            previous = command.name
        return children

    def categories(self, commands=None, /, *, keeporder=False):
        """
        Partition level-1 commands by category.

        Returns
        - [(category, [commands...]), ...] with uncategorized commands under
          "Other Commands" last, or [] when no command declares a category.
        """
        commands = self._commands if commands is None else commands
        if not any(command.category for command in commands):
            return []
        buckets = {}
        others = []
        for command in commands:
            if command.level > 1:
                continue
            if not command.category:
                others.append(command)
                continue
            buckets.setdefault(command.category, []).append(command)
        categories = list(buckets.items())
        if not keeporder:
            categories.sort(key=operator.itemgetter(0))
        if others:
            categories.append(("Other Commands", others))
        return categories

    def suggest(self, name, /):
        """
        Suggest up to five command names close to name.

        Names within edit distance 2 come first, then names starting with name
        in ascending distance.
        """
        close = []
        prefixed = []
        for command in self._commands:
            if command.hidden or not command.name:
                continue
            gap = distance(name, command.name)
            if gap <= 2:
                close.append(command.name)
            elif command.name.lower().startswith(name.lower()):
                prefixed.append((gap, command.name))
        prefixed.sort(key=operator.itemgetter(0))
        return [*close, *map(operator.itemgetter(1), prefixed)][:5]


__all__ = (
    "Command",
    "Commands",
    "Route",
)

del CommandType
