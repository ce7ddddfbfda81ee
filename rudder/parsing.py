"""
Rudder parsing pipeline: one ParsingContext per invocation.

Order of operations in ParsingContext.parse()
1. extract flags and positional arguments from the record (plus the global
   flags record unless disabled) and bind the flags into a fresh FlagSet;
2. split the tokens into leading non-flag tokens and the flag suffix, and
   reject leading tokens that no positional argument can take;
3. apply the programmatic defaults mapping to descriptors without a tag default;
4. read environment fallbacks for scalar descriptors;
5. register the show-hidden switch when it appears on the command line;
6. expand bundled boolean shorts when the application allows it;
7. parse the flag suffix;
8. bind positional arguments over the leading tokens and the residual;
9. check required flags, then required arguments.

Precedence: command line > environment > tag default > programmatic default > zero.

Failures are CommandException instances surfaced through faults.trigger() with
the handling mode of the parse; ProgrammingError always propagates.
"""
import dataclasses
import os
from collections.abc import Callable, Mapping

from rich.text import Text

from .arguments import Argument, cli, extract
from .faults import *
from .flagset import FlagSet
from .usage import render
from .utils import *

SHOW_HIDDEN = "mcli-show-hidden"

_PARSE_OPTIONS = {
    "name": str,
    "args": list | tuple,
    "handling": ErrorHandling,
    "disable_global_flags": bool,
    "usage": Callable,
    "footer": Callable,
    "defaults": Mapping,
    "completions": Mapping,
}


@dataclasses.dataclass
class _Empty:
    pass


@dataclasses.dataclass
class _ShowHidden:
    enabled: bool = cli(f"--{SHOW_HIDDEN}, show hidden commands and flags", default="true")


def hasboolflag(name, args, /):
    """Tell whether "-name", "--name" or "--name=value" appears in args."""
    for arg in args:
        if not arg.startswith("-") or name not in arg:
            continue
        if arg.lstrip("-").partition("=")[0] == name:
            return True
    return False


def normalizecompletion(name, /):
    """Completion function keys: "--flag" and "-flag" are the same key."""
    if name.startswith("-"):
        name = "-" + name.lstrip("-")
    return name.strip()


def _sanitize_parse_options(options, /):
    """
    Internal: validate parse options.

    Raises
    - TypeError: unknown option or value of the wrong type.
    """
    for name, value in options.items():
        if name not in _PARSE_OPTIONS:
            raise TypeError(f"parse() got an unexpected option {name!r}")
        if not isinstance(value, _PARSE_OPTIONS[name]):
            raise TypeError(f"parse() option {name!r} has an invalid type {type(value).__name__!r}")
    if "args" in options:
        if not all(isinstance(arg, str) for arg in options["args"]):
            raise TypeError("parse() option 'args' must contain strings")
        options["args"] = list(options["args"])
    if "completions" in options:
        options["completions"] = {
            normalizecompletion(name): function for name, function in options["completions"].items()
        }
    return options


def _instantiate(record, /):
    if record is None:
        return _Empty()
    if isinstance(record, type) and dataclasses.is_dataclass(record):
        return record()
    if dataclasses.is_dataclass(record):
        return record
    raise ProgrammingError(f"args must be a dataclass or a dataclass instance, got {type(record).__name__}")


def _fits(positionals, ambiguous, /):
    # walk the positionals the way binding does; leftovers mean the
    # leading words were meant as a command path
    index = count = 0
    while index < len(positionals) and count < len(ambiguous):
        if not positionals[index].composite:
            index += 1
        count += 1
    return count >= len(ambiguous)


def reorder(args, /):
    for index, arg in enumerate(args):
        if arg.startswith("-"):
            return list(args[:index]), list(args[index:])
    return list(args), []


class ParsingContext:
    """
    State of one invocation: the routed command, its descriptors and the
    flag set they are bound to.

    Attributes
    - app: the owning App.
    - command: the routed Command (None for groups and direct parses).
    - name: the command path shown in help.
    - args: tokens left after routing (None when nothing was routed).
    - ambiguous: non-flag tokens between the command path and the first flag.
    - flags / positionals: descriptors of the last parse.
    - flagset: the FlagSet of the last parse.
    - record: the parsed record instance.
    - fault: the CommandException recorded when the parse continued after an error.
    """

    def __init__(self, app, /, *, command=None, name="", args=None, ambiguous=()):
        self.app = app
        self.command = command
        self.name = name
        self.args = None if args is None else list(args)
        self.ambiguous = list(ambiguous)
        self.showhidden = False
        self.flags = []
        self.positionals = []
        self.flagset = FlagSet(name)
        self.record = None
        self.options = {}
        self.parsed = False
        self.fault = None

    @property
    def handling(self):
        return self.options.get("handling", self.app.handling)

    @property
    def invalidname(self):
        return spacejoin(self.name, *self.ambiguous)

    def extract(self, record, /):
        """
        Build the descriptors of record (and of the global flags) and bind the flags.

        Raises
        - ProgrammingError: for any ill-formed declaration.
        """
        keeporder = self.app.keep_command_order
        flags, positionals = extract(record, keeporder=keeporder)
        if self.app.globals is not None and not self.options.get("disable_global_flags"):
            globalflags, globalpositionals = extract(self.app.globals, isglobal=True, keeporder=keeporder)
            flags.extend(globalflags)
            positionals.extend(globalpositionals)
            if not keeporder:
                flags.sort(key=lambda argument: argument.name.lower())

        self.flagset = FlagSet(self.name)
        for argument in flags:
            self.flagset.bind(argument)
        self.flags = flags
        self.positionals = positionals
        self.record = record

    def parse(self, record=None, /, **options):
        """
        Parse the invocation tokens into record.

        Parameters
        - record: a dataclass type (instantiated with no arguments), a dataclass
          instance, or None for commands that only take the global flags.
        - options: parse options (name, args, handling, disable_global_flags,
          usage, footer, defaults, completions).

        Returns
        - the populated record instance (also exposed as self.record).

        Raises
        - ProgrammingError: ill-formed declarations, or a second parse of the same invocation.
        - CommandException: user errors when the handling mode is PANIC.
        - SystemExit: user errors (status 2) or help (status 0) in EXIT mode.
        """
        if self.parsed:
            raise ProgrammingError("arguments have already been parsed for this command")
        self.options = _sanitize_parse_options(dict(options))
        if "name" in self.options:
            self.name = self.options["name"]
        self.extract(_instantiate(record))

        if self.app.completion is not None:
            self.parsed = True
            return self.app.completion.finish(self)

        if "args" in self.options:
            args = self.options["args"]
            self.ambiguous, args = reorder(args)
        elif self.args is not None:
            args = self.args
        else:
            self.ambiguous, args = reorder(self.app.argv)

        try:
            self.consume(args)
        except CommandException as fault:
            self.fail(fault)
        finally:
            self.parsed = True

        for argument in self.flagset.deprecations:
            trigger(
                DeprecatedFlagWarning(
                    f"{argument.helpname} is deprecated",
                    code=FaultCode.DEPRECATED_FLAG,
                    title="deprecated"
                ),
                console=self.app.console,
                colorful=self.app.colorful,
            )
        return self.record

    def consume(self, args, /):
        """
        Run the binding steps over the flag suffix args.

        Raises
        - CommandException: the first user error met.
        """
        if not _fits(self.positionals, self.ambiguous):
            raise InvalidCommandError(
                f"'{self.invalidname}' is not a valid command. See '{progname()} -h' for help.",
                code=FaultCode.INVALID_COMMAND,
                suggestions=self.app.commands.suggest(self.invalidname),
            )

        self.applydefaults()
        self.readenv()

        if hasboolflag(SHOW_HIDDEN, args):
            holder = _ShowHidden()
            self.flagset.bind(Argument(
                f"--{SHOW_HIDDEN}, show hidden commands and flags", holder, "enabled", bool, default="true"
            ))
            self.showhidden = True

        if self.app.allow_posix_stmo:
            args = self.flagset.expand(args)

        try:
            self.flagset.parse(args)
        finally:
            if (argument := self.flagset.lookup(SHOW_HIDDEN)) is not None:
                self.showhidden = bool(argument.value)

        self.flagset.args = self.bindpositionals([*self.ambiguous, *self.flagset.args])
        self.checkrequired()

    def applydefaults(self):
        """Apply the programmatic defaults to descriptors declaring no tag default."""
        defaults = self.options.get("defaults", {})
        if not defaults:
            return
        for argument in [*self.flags, *self.positionals]:
            if argument.literal:
                continue
            for key in filter(None, (argument.name, argument.short)):
                if key not in defaults:
                    continue
                value = defaults[key]
                if not isinstance(value, str):
                    argument.value = value
                    break
                try:
                    argument.set(value)
                except ValueError as error:
                    raise ProgrammingError(
                        f"invalid default value {quote(value)} for {argument.helpname}: {error}"
                    ) from None
                break

    def readenv(self):
        """Apply the first non-empty environment variable of every scalar descriptor."""
        for argument in [*self.flags, *self.positionals]:
            if argument.composite:
                continue
            for name in argument.envs:
                if not (value := os.environ.get(name, "")):
                    continue
                try:
                    argument.set(value)
                except ValueError as error:
                    raise InvalidValueError(
                        f"invalid value {quote(value)} for {argument.helpname} from env {name}: {error}",
                        code=FaultCode.INVALID_VALUE
                    ) from None
                if not argument.positional:
                    self.flagset.mark(argument)
                break

    def bindpositionals(self, tokens, /):
        """
        Bind tokens to positional arguments: one token per scalar argument, all
        remaining tokens for a trailing list/dict argument.

        Returns
        - the tokens consumed as positional values.
        """
        index = consumed = 0
        while index < len(self.positionals) and consumed < len(tokens):
            argument = self.positionals[index]
            token = tokens[consumed]
            try:
                argument.set(token)
            except ValueError as error:
                raise InvalidValueError(
                    f"invalid value {quote(token)} for {argument.helpname}: {error}",
                    code=FaultCode.INVALID_ARGUMENT
                ) from None
            if argument.deprecated and argument not in self.flagset.deprecations:
                self.flagset.deprecations.append(argument)
            if not argument.composite:
                index += 1
            consumed += 1
        if consumed < len(tokens):
            raise UnexpectedArgumentsError(
                f"unexpected arguments: {quote(tokens[consumed:])}",
                code=FaultCode.UNEXPECTED_ARGUMENTS
            )
        return tokens

    def checkrequired(self):
        for argument in self.flags:
            if argument.required and argument.iszero():
                raise RequiredFlagError(
                    f"flag is required but not set: -{argument.name}",
                    code=FaultCode.REQUIRED_FLAG
                )
        for argument in self.positionals:
            if argument.required and argument.iszero():
                raise RequiredArgumentError(
                    f"argument is required but not given: {argument.name}",
                    code=FaultCode.REQUIRED_ARGUMENT
                )

    def fail(self, fault, /):
        """Record fault and surface it with the handling mode of the parse."""
        self.fault = self.flagset.fault = fault
        trigger(
            fault,
            console=self.app.console,
            colorful=self.app.colorful,
            usage=self.print_usage,
            handling=self.handling,
        )

    def print_usage(self):
        """Print the help of this invocation to the application console."""
        if not self.parsed and not self.flags and self.app.globals is not None:
            self.extract(_Empty())
        text = Text(render(self))
        if self.app.colorful:
            text.highlight_regex(r"(?m)^[A-Z][A-Za-z ]*:$", "bold")
        self.app.console.print(text, end="")


__all__ = (
    "SHOW_HIDDEN",
)
