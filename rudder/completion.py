"""
Rudder completion engine.

A completion request is an ordinary invocation whose tokens end with
"--mcli-generate-completion [SHELL]". The word under the cursor is the last
token before the sentinel (empty when the cursor sits after a space).

Flow
- Walk the command tree with the leading non-flag words.
- On a group (or the root) without flags typed, print the sub-commands whose
  name starts with the next word.
- Otherwise run the command body in completion mode: its parse() binds the
  typed words silently, then prints either flag names, flag values or
  positional values, and ends the invocation with CompletionExit.

Output
- one candidate per line; "value<TAB>description" for bash and fish,
  "value:description" for zsh, the bare value for every other shell.
"""
import dataclasses
import sys

from .faults import CommandException, InvalidCommandError
from .parsing import ParsingContext, reorder
from .scripts import SHELLS

COMPLETION_FLAG = "--mcli-generate-completion"


class CompletionExit(SystemExit):
    """Ends an invocation once completion candidates have been printed."""

    def __init__(self):
        super().__init__(0)


@dataclasses.dataclass
class CompletionItem:
    value: str
    description: str = ""


class ArgCompletionContext:
    """
    What a value-completion function may look at.

    - global_flags: the global flags record of the application (or None).
    - command_args: the record of the command being completed.
    - flagset: the FlagSet holding the words typed so far.
    - args: positional words typed so far.
    - arg_prefix: the partial word under the cursor.
    """

    def __init__(self, app, completion, context, /):
        self._app = app
        self._completion = completion
        self._context = context

    @property
    def global_flags(self):
        return self._app.globals

    @property
    def command_args(self):
        return self._context.record

    @property
    def flagset(self):
        return self._context.flagset

    @property
    def args(self):
        return list(self._context.flagset.args)

    @property
    def arg_prefix(self):
        return self._completion.prefix


def hascompletionflag(args, /):
    """
    Look for the completion sentinel.

    Returns
    - (found, args before the sentinel, shell) where shell is "unsupported"
      unless the token after the sentinel names a known shell.

    >>> hascompletionflag(["cmd", COMPLETION_FLAG, "bash"])
    (True, ['cmd'], 'bash')
    """
    args = list(args)
    if COMPLETION_FLAG not in args:
        return False, args, "unsupported"
    index = args.index(COMPLETION_FLAG)
    shell = "unsupported"
    if index < len(args) - 1 and args[index + 1] in SHELLS:
        shell = args[index + 1]
    return True, args[:index], shell


def formatcompletion(shell, value, description="", /):
    if not description:
        return value
    match shell:
        case "bash" | "fish":
            return f"{value}\t{description}"
        case "zsh":
            return f"{value}:{description}"
        case _:
            return value


def _closed(command, /):
    return command is not None and (command.iscompletion or command.options.get("no_completion", False))


class CommandTree:
    """Command names split on words; nodes without a command are implicit groups."""

    def __init__(self, name="", command=None, path=""):
        self.name = name
        self.command = command
        self.path = path
        self.children = []
        self.subtree = {}

    @classmethod
    def build(cls, commands, /):
        root = cls()
        for command in commands:
            root.add(command)
        return root

    @property
    def isleaf(self):
        return not self.children

    def add(self, command, /):
        words = command.name.split()
        if not words:
            self.command = command
            return
        node = self
        for index, word in enumerate(words):
            if (child := node.subtree.get(word)) is None:
                child = type(self)(word, None, " ".join(words[:index + 1]))
                node.subtree[word] = child
                node.children.append(child)
            node = child
        node.command = command

    def find(self, names, /):
        """
        Descend along names.

        Returns
        - (node, words left) or (None, []) when the walk meets a command that
          takes no part in completion.
        """
        node = self
        for index, name in enumerate(names):
            if (child := node.subtree.get(name)) is None:
                return node, list(names[index:])
            if _closed(child.command):
                return None, []
            node = child
        return node, []


class Completion:
    """
    State of one completion request.

    Attributes
    - shell: bash, zsh, fish, powershell or "unsupported".
    - lastarg: the word under the cursor; userargs: the complete words before it.
    - args: the words handed to the command parser.
    - prefix: the partial word candidates must start with.
    - wantvalue / flagname: a flag value is being completed.
    - wantpositional: a positional value is being completed.
    """

    def __init__(self, app, args, shell, /):
        args = list(args)
        self.app = app
        self.shell = shell
        self.hasflag = any(arg.startswith("-") for arg in args)
        self.words = args
        self.lastarg = args[-1] if args else ""
        self.userargs = args[:-1]
        self.args = list(self.userargs)
        self.node = None
        self.prefix = ""
        self.wantvalue = False
        self.flagname = ""
        self.wantpositional = False

    def write(self, lines, /):
        out = self.app.completion_out if self.app.completion_out is not None else sys.stdout
        for line in lines:
            print(line, file=out)

    def run(self):
        """Resolve the command under completion and print candidates."""
        names = self.words
        for index, word in enumerate(self.words):
            if word.startswith("-"):
                names = self.words[:index]
                break

        node, left = CommandTree.build(self.app.commands.sorted()).find(names)
        if node is None:
            return
        self.node = node

        command = node.command
        context = self.app.context = ParsingContext(self.app, command=command, name=node.path)
        isgroup = command is None or command.isgroup or command.isroot
        if not self.hasflag and isgroup and not node.isleaf:
            self.suggestcommands(left[0] if left else "")
            return

        if command is None or command.isgroup or _closed(command):
            return
        if not (self.app.enable_flag_completion_for_all or command.options.get("flag_completion", False)):
            return
        self.app.execute(command, context)

    def suggestcommands(self, word, /):
        lines = []
        for child in self.node.children:
            if child.command is None and child.isleaf:
                continue
            if child.command is not None and (child.command.hidden or _closed(child.command)):
                continue
            if not child.name.startswith(word):
                continue
            lines.append(formatcompletion(self.shell, child.name, child.command.description if child.command else ""))
        self.write(lines)

    def _lookup(self, context, name, /):
        for argument in context.flags:
            if name in (argument.name, argument.short):
                return argument
        return None

    def _want(self, context, word, /):
        # word is a complete flag token: does it wait for a value?
        if "=" in word:
            self.wantpositional = True
            return
        if (argument := self._lookup(context, word.lstrip("-"))) is None:
            return
        if argument.boolean:
            self.wantpositional = True
        else:
            self.wantvalue = True
            self.flagname = word.lstrip("-")
            self.args = self.userargs[:-1]

    def inspect(self, context, /):
        """Classify the word under the cursor."""
        previous = self.userargs[-1] if self.userargs else ""
        if self.lastarg:
            if self.lastarg.startswith("-"):
                name, separator, value = self.lastarg.partition("=")
                if separator:
                    self.wantvalue = True
                    self.flagname = name.lstrip("-")
                    self.prefix = value
                else:
                    self.prefix = self.lastarg.lstrip("-")
                return
            self.prefix = self.lastarg
            if previous.startswith("-"):
                self._want(context, previous)
            elif previous and self.node.isleaf:
                self.wantpositional = True
        elif previous:
            if previous.startswith("-"):
                self._want(context, previous)
            elif self.node.isleaf:
                self.wantpositional = True

    def finish(self, context, /):
        """
        Complete inside the parse of a command body; never returns.

        Raises
        - CompletionExit: always, once candidates are printed.
        """
        self.inspect(context)

        args = list(self.args)
        for word in context.name.split():
            if not args or args[0] != word:
                break
            args.pop(0)

        context.ambiguous, suffix = reorder(args)
        try:
            context.consume(suffix)
        except InvalidCommandError:
            raise CompletionExit() from None
        except CommandException as fault:
            context.fault = context.flagset.fault = fault

        if self.wantvalue:
            self.completevalue(context)
        elif self.wantpositional or not self.lastarg.startswith("-"):
            self.completepositional(context)
        else:
            self.completeflags(context)
        raise CompletionExit()

    def completeflags(self, context, /):
        seen = set()
        for arg in self.args:
            if arg.startswith("-") and (name := arg.lstrip("-").partition("=")[0]):
                seen.add(name)

        def describe(argument):
            if self.shell == "powershell":
                return ""
            text = argument.usage(False)[1].strip()
            if (index := text.find("\n")) > 0:
                text = text[:index] + " ..."
            return text

        lines = []
        for argument in context.flags:
            if argument.hidden and not context.showhidden:
                continue
            if not argument.composite and (argument.name in seen or argument.short in seen):
                continue
            if argument.short and argument.short.startswith(self.prefix):
                lines.append(formatcompletion(self.shell, "-" + argument.short, describe(argument)))
            if argument.name and argument.name.startswith(self.prefix):
                lines.append(formatcompletion(self.shell, "--" + argument.name, describe(argument)))
        self.write(lines)

    def _function(self, context, argument, *keys):
        functions = context.options.get("completions", {})
        for key in (*keys, argument.complete):
            if key and (function := functions.get(key)) is not None:
                return function
        return None

    def completevalue(self, context, /):
        if (argument := self._lookup(context, self.flagname)) is None:
            return
        keys = ["-" + argument.name]
        if argument.short:
            keys.append("-" + argument.short)
        if (function := self._function(context, argument, *keys)) is not None:
            self.emit(function, context)

    def completepositional(self, context, /):
        remaining = len(context.flagset.args)
        target = None
        for argument in context.positionals:
            if argument.composite or remaining == 0:
                target = argument
                break
            remaining -= 1
        if target is None:
            return
        if (function := self._function(context, target, target.name)) is not None:
            self.emit(function, context)

    def emit(self, function, context, /):
        lines = []
        for item in function(ArgCompletionContext(self.app, self, context)) or ():
            if isinstance(item, str):
                item = CompletionItem(item)
            elif not isinstance(item, CompletionItem):
                item = CompletionItem(*item)
            lines.append(formatcompletion(self.shell, item.value, item.description))
        self.write(lines)


__all__ = (
    "COMPLETION_FLAG",
    "CompletionExit",
    "CompletionItem",
    "ArgCompletionContext",
)
