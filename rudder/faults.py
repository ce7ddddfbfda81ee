"""
Rudder faults: the errors and warnings a command line can produce.

Scope
- FaultCode: stable numeric identifiers of user-facing faults, by domain.
- CommandException / CommandWarning: carry a message plus options and render
  themselves with rich (header, message, suggestions, hint).
- ProgrammingError: an ill-formed declaration in the calling program. It is
  raised directly and never goes through trigger().
- ErrorHandling: what happens once a user-facing fault has been printed.
- trigger(fault, **options): merge runtime options into the fault and surface it.

Integration
- The pipeline builds a fault and calls trigger(fault, console=..., usage=..., handling=...).
- The fault prints itself, runs the usage callback, then returns, exits or raises.
"""
import inspect
import sys
import warnings
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.text import Text

from .utils import Unset, progname

console = Console(stderr=True, highlight=False, soft_wrap=True)


class FaultCode(IntEnum):
    """
    Fault identifiers printed in fault headers.

    domains
    - routing (111xx): INVALID_COMMAND, UNEXPECTED_ARGUMENTS
    - flags (112xx): UNKNOWN_FLAG, MISSING_VALUE, INVALID_VALUE, BAD_FLAG_SYNTAX, REQUIRED_FLAG
    - positional arguments (113xx): INVALID_ARGUMENT, REQUIRED_ARGUMENT
    - help (114xx): HELP_REQUESTED
    - warnings (12xxx): DEPRECATED_FLAG
    """
    # --- routing errors (111xx) ---
    INVALID_COMMAND             = 11101
    UNEXPECTED_ARGUMENTS        = 11102

    # --- flag errors (112xx) ---
    UNKNOWN_FLAG                = 11201
    MISSING_VALUE               = 11202
    INVALID_VALUE               = 11203
    BAD_FLAG_SYNTAX             = 11204
    REQUIRED_FLAG               = 11205

    # --- positional errors (113xx) ---
    INVALID_ARGUMENT            = 11301
    REQUIRED_ARGUMENT           = 11302

    # --- help (114xx) ---
    HELP_REQUESTED              = 11401

    # --- warnings (12xxx) ---
    DEPRECATED_FLAG             = 12101

    def normalize(self):
        """
        Label of this code in fault headers.

        A __codes__ mapping defined in __main__ may relabel codes; the numeric
        value is used otherwise.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class ErrorHandling(IntEnum):
    """
    behavior after a user-facing fault has been rendered.

    - CONTINUE: record the fault and return control to the caller.
    - EXIT: terminate the process (status 2, or 0 when help was requested).
    - PANIC: raise the fault.
    """
    CONTINUE = 0
    EXIT = 1
    PANIC = 2


class ProgrammingError(Exception):
    """Raised for ill-formed declarations; always fatal."""


def _palette(defaults):
    return defaultdict(str, defaults | getattr(__import__("__main__"), "__styles__", {}))


class _Fault:
    """Message and frozen options shared by errors and warnings."""

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return self.message if isinstance(self.message, str) else ""

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})

    def _styler(self, styles):
        colorful = self.options.get("colorful", True)

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            return Text(str(fragment), styles[style] if colorful else "")

        return text

    def _header(self, text, title):
        return Text.assemble(
            "[ ",
            text(progname(), "prog-name"),
            " — ",
            text(self.options["code"].normalize(), "code"),
            " | ",
            text(self.options.get("title", title).title(), f"{title}-title"),
            " ]"
        )


class CommandException(_Fault, Exception):
    status = 2

    def __rich__(self):
        styles = _palette({
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "error-title": "bold #FF4DA6",
            "error-message": "#C8C8D0",
            "suggestion": "bold #36C5F0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
        })
        text = self._styler(styles)

        renders = []
        if self.options.get("code"):
            renders.append(self._header(text, "error"))
        renders.append(text(self.message, "error-message"))

        if suggestions := self.options.get("suggestions"):
            renders.append(Text("Did you mean this?"))
            for suggestion in suggestions:
                renders.append(Text.assemble("    \t", text(suggestion, "suggestion")))
            renders.append(Text(""))

        if hint := self.options.get("hint"):
            renders.append(Text.assemble(text(" → ", "hint-arrow"), text(hint, "hint")))

        return Group(*renders)

    def __trigger__(self):
        if self.message:
            self.options.get("console", console).print(self)
        if usage := self.options.get("usage"):
            usage()
        match self.options.get("handling", ErrorHandling.EXIT):
            case ErrorHandling.EXIT:
                sys.exit(self.status)
            case ErrorHandling.PANIC:
                raise self from None


class InvalidCommandError(CommandException): ...
class UnexpectedArgumentsError(CommandException): ...
class UnknownFlagError(CommandException): ...
class MissingValueError(CommandException): ...
class InvalidValueError(CommandException): ...
class BadFlagSyntaxError(CommandException): ...
class RequiredFlagError(CommandException): ...
class RequiredArgumentError(CommandException): ...


class HelpRequested(CommandException):
    """Pseudo-fault raised when -h/--help is seen; exits with status 0."""
    status = 0


class CommandWarning(_Fault, Warning):
    def __rich__(self):
        styles = _palette({
            "prog-name": "bold #E6E6F0",
            "code": "bold #FFB400",
            "warning-title": "bold #FFC2E0",
            "warning-message": "#D6D6DE",
        })
        text = self._styler(styles)
        return Group(self._header(text, "warning"), text(self.message, "warning-message"))

    def __trigger__(self):
        if "console" not in self.options:
            return warnings.warn(self, stacklevel=len(inspect.stack()))
        self.options["console"].print(self)


class DeprecatedFlagWarning(CommandWarning): ...


def trigger(fault, /, **options):
    """
    Surface fault with options merged in (console, colorful, usage, handling,
    code, title, hint, suggestions).

    Raises
    - TypeError: fault does not implement __trigger__ and __replace__.
    """
    for hook in ("__trigger__", "__replace__"):
        if not callable(getattr(fault, hook, None)):
            raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    fault.__replace__(**options).__trigger__()


__all__ = (
    "FaultCode",
    "ErrorHandling",
    "ProgrammingError",
    "CommandException",
    "InvalidCommandError",
    "UnexpectedArgumentsError",
    "UnknownFlagError",
    "MissingValueError",
    "InvalidValueError",
    "BadFlagSyntaxError",
    "RequiredFlagError",
    "RequiredArgumentError",
    "HelpRequested",
    "CommandWarning",
    "DeprecatedFlagWarning",
    "trigger",
)
