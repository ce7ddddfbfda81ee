"""
Rudder flag set: the token parser behind every command.

A FlagSet owns one binding table keyed by every accepted name of a flag, so
"-n" and "--name" resolve to the same Argument and there is nothing to keep in
sync after parsing.

Token grammar
- "--name", "--name=value", "--name value" (and the single-dash spellings).
- boolean flags never consume the next token; "--flag=false" sets them explicitly.
- "--" ends flag parsing; it is consumed and everything after it is residual.
- the first token that is "-" or does not start with "-" ends flag parsing.
- "-h" and "--help" raise HelpRequested unless a flag of that name is bound.
"""
from .faults import *
from .utils import quote


class FlagSet:
    """
    Parse command-line tokens into bound Argument descriptors.

    Attributes
    - name: command name used in diagnostics.
    - args: tokens left for positional binding once parsing is done.
    - parsed: whether parse() ran.
    - fault: the CommandException recorded when parsing continued after an error.
    - deprecations: deprecated descriptors that received a value from the command line.
    """

    def __init__(self, name="", /):
        self.name = name
        self.args = []
        self.parsed = False
        self.fault = None
        self.deprecations = []
        self._bindings = {}
        self._flags = []
        self._visited = {}

    def bind(self, argument, /):
        """
        Register a flag under its long and short names.

        Raises
        - ProgrammingError: a name is already taken.
        """
        for name in filter(None, (argument.name, argument.short)):
            if name in self._bindings:
                raise ProgrammingError(f"flag redefined: {name}")
        for name in filter(None, (argument.name, argument.short)):
            self._bindings[name] = argument
        self._flags.append(argument)

    def lookup(self, name, /):
        """Return the Argument bound to a long or short name, or None."""
        return self._bindings.get(name)

    def mark(self, argument, /):
        for name in filter(None, (argument.name, argument.short)):
            self._visited[name] = argument

    def isset(self, name, /):
        return name in self._visited

    def visit(self, callback, /):
        """Call callback(name, argument) for every set name, in lexicographic order."""
        for name in sorted(self._visited):
            callback(name, self._visited[name])

    def visitall(self, callback, /):
        """Call callback(name, argument) for every bound name, in lexicographic order."""
        for name in sorted(self._bindings):
            callback(name, self._bindings[name])

    @property
    def flags(self):
        return list(self._flags)

    def expand(self, arguments, /):
        """
        Expand bundled boolean shorts ("-abc" -> "-a", "-b", "-c").

        A token is expanded only when it is not a bound name itself, carries no
        "=" and every character is a bound single-letter boolean flag. Any other
        token is kept verbatim. Tokens after "--" are never touched.
        """
        expanded = []
        for index, token in enumerate(arguments):
            if token == "--":
                expanded.extend(arguments[index:])
                break
            letters = token[1:]
            if (
                len(token) > 2 and
                token[0] == "-" and
                token[1] != "-" and
                "=" not in token and
                letters not in self._bindings and
                all(self._isboolean(letter) for letter in letters)
            ):
                expanded.extend("-" + letter for letter in letters)
            else:
                expanded.append(token)
        return expanded

    def _isboolean(self, name, /):
        return (argument := self._bindings.get(name)) is not None and argument.boolean

    def parse(self, arguments, /):
        """
        Consume flags from the front of arguments; the rest ends up in self.args.

        Raises
        - HelpRequested, UnknownFlagError, BadFlagSyntaxError, MissingValueError,
          InvalidValueError: the first problem met, processing stops there.
        """
        self.parsed = True
        self.args = list(arguments)
        while self._parseone():
            pass

    def _parseone(self):
        if not self.args:
            return False
        token = self.args[0]
        if len(token) < 2 or token[0] != "-":
            return False

        dashes = 1
        if token[1] == "-":
            dashes = 2
            if len(token) == 2:
                del self.args[0]
                return False

        name = token[dashes:]
        if not name or name[0] in "-=":
            raise BadFlagSyntaxError(f"bad flag syntax: {token}", code=FaultCode.BAD_FLAG_SYNTAX)
        del self.args[0]

        name, separator, value = name.partition("=")
        hasvalue = bool(separator)

        if (argument := self._bindings.get(name)) is None:
            if name in ("h", "help"):
                raise HelpRequested("", code=FaultCode.HELP_REQUESTED, title="help")
            raise UnknownFlagError(f"flag provided but not defined: -{name}", code=FaultCode.UNKNOWN_FLAG)

        if argument.boolean:
            try:
                argument.set(value if hasvalue else "true")
            except ValueError as error:
                raise InvalidValueError(
                    f"invalid boolean value {quote(value)} for -{name}: {error}",
                    code=FaultCode.INVALID_VALUE
                ) from None
        else:
            if not hasvalue and self.args:
                hasvalue = True
                value = self.args.pop(0)
            if not hasvalue:
                raise MissingValueError(f"flag needs an argument: -{name}", code=FaultCode.MISSING_VALUE)
            try:
                argument.set(value)
            except ValueError as error:
                raise InvalidValueError(
                    f"invalid value {quote(value)} for flag -{name}: {error}",
                    code=FaultCode.INVALID_VALUE
                ) from None

        self.mark(argument)
        if argument.deprecated and argument not in self.deprecations:
            self.deprecations.append(argument)
        return True


__all__ = (
    "FlagSet",
)
