"""
Rudder application: registration and dispatch.

What this module provides
- App: owns the command registry, the global flags record and the
  per-invocation state; run() routes the command line to a command body.
- Context: what a command body receives (fn(ctx) and typed fn(ctx, args)).
- new_command(fn, **parse_options): typed command whose record is parsed
  before fn runs.

Quick start
    from dataclasses import dataclass
    from rudder import App, cli

    @dataclass
    class Args:
        name: str = cli("-n, --name, Who do you want to say to", default="tom")
        text: str = cli("#R, text, The 'message' you want to send")

    def say(ctx):
        args = ctx.parse(Args)
        print(f"Say to {args.name}: {args.text}")

    app = App("A demo program")
    app.add("say", say, "Say something")
    app.add_help()
    app.add_completion()

    if __name__ == "__main__":
        app.run()

Dispatch rules of run()
- an exactly matched command runs its body;
- otherwise a root command runs when the first word is missing, a flag or unknown;
- a path with sub-commands prints its usage;
- an unknown path reports "'<path>' is not a valid command", suggestions and usage.
"""
import dataclasses
import sys

from rich.console import Console

from . import scripts
from .commands import Command, Commands
from .completion import Completion, CompletionExit, hascompletionflag
from .faults import *
from .parsing import SHOW_HIDDEN, ParsingContext, hasboolflag
from .utils import *


def new_command(callback, /, **parse_options):
    """
    Build a typed command from fn(ctx, args).

    The record type comes from the annotation of the second parameter; it is
    parsed with parse_options before fn is called. Flag completion is enabled
    for typed commands.
    """
    return Command.typed(callback, **parse_options)


class Context:
    """
    Handle given to command bodies.

    Properties
    - command: the Command being executed.
    - app: the owning App.
    - args_error: the fault recorded by a parse that continued after an error.
    - flagset: the FlagSet of the last parse.
    """

    def __init__(self, app, context, /):
        self._app = app
        self._context = context

    @property
    def app(self):
        return self._app

    @property
    def command(self):
        return self._context.command

    @property
    def args_error(self):
        return self._context.fault

    @property
    def flagset(self):
        return self._context.flagset

    @property
    def ambiguous(self):
        """Non-flag words typed after the command path."""
        return list(self._context.ambiguous)

    def parse(self, record=None, /, **options):
        """Parse the command line into record; see ParsingContext.parse()."""
        return self._context.parse(record, **options)

    def print_help(self):
        self._context.print_usage()


def _sanitize_app_options(options, /):
    for name in ("description", "help_footer"):
        if not isinstance(options[name], str):
            raise TypeError(f"app '{name}' must be a string")
    if not isinstance(options["handling"], ErrorHandling):
        raise TypeError("app 'handling' must be an ErrorHandling")


def _body(callback, /):
    if isinstance(callback, Command):
        return callback
    if not callable(callback):
        raise ProgrammingError("command body must be callable or a command built by new_command()")
    command = Command(callback)
    if command._arity > 1:
        raise ProgrammingError("command body must accept no argument or a context, use new_command() for typed bodies")
    return command


class App:
    """
    A command-line application.

    Attributes
    - description: shown at the top of the root help.
    - help_footer: appended to every help unless a parse provides its own footer.
    - keep_command_order: list commands (and flags) in registration order.
    - allow_posix_stmo: expand bundled boolean shorts ("-abc").
    - enable_flag_completion_for_all: complete flags of every command.
    - handling: default ErrorHandling of parses and routing errors.
    - out: sink of help and diagnostics (stderr when None).
    - completion_out: sink of completion candidates and scripts (stdout when None).
    - colorful: style help and diagnostics when the sink is a terminal.
    """

    def __init__(
            self,
            description="",
            help_footer="",
            *,
            keep_command_order=False,
            allow_posix_stmo=False,
            enable_flag_completion_for_all=False,
            handling=ErrorHandling.EXIT,
            out=None,
            completion_out=None,
            colorful=True
    ):
        _sanitize_app_options({"description": description, "help_footer": help_footer, "handling": handling})
        self.description = description
        self.help_footer = help_footer
        self.keep_command_order = bool(keep_command_order)
        self.allow_posix_stmo = bool(allow_posix_stmo)
        self.enable_flag_completion_for_all = bool(enable_flag_completion_for_all)
        self.handling = handling
        self.out = out
        self.completion_out = completion_out
        self.colorful = bool(colorful)
        self.console = Console(
            file=out,
            stderr=out is None,
            highlight=False,
            soft_wrap=True,
            no_color=not colorful,
        )
        self.commands = Commands()
        self.globals = None
        self.context = None
        self.completion = None
        self.completion_name = ""
        self._argv = None

    @property
    def argv(self):
        """Tokens of the current invocation (sys.argv[1:] outside run())."""
        return list(self._argv) if self._argv is not None else sys.argv[1:]

    # --- registration ---

    def set_global_flags(self, record, /):
        """
        Declare flags shared by every command.

        Raises
        - ProgrammingError: record is not a dataclass or a dataclass instance.
        """
        if isinstance(record, type) and dataclasses.is_dataclass(record):
            record = record()
        elif not dataclasses.is_dataclass(record):
            raise ProgrammingError("global flags must be a dataclass or a dataclass instance")
        self.globals = record

    def _add(self, name, command, description="", /, **registration):
        if not (name := normalize(name)) and not command.isroot:
            raise ProgrammingError("command name must not be empty")
        return self.commands.add(command.register(name, description, **registration))

    def add(self, name, callback, description="", /, **options):
        """
        Register a command.

        Parameters
        - name: space-separated command path ("git remote add").
        - callback: fn(), fn(ctx) or a command built by new_command().
        - description: one-line summary shown in listings.
        - options: category, long_desc, examples, flag_completion, no_completion.
        """
        return self._add(name, _body(callback), description, **options)

    def add_root(self, callback, /, **options):
        """Register the command run when no other command matches."""
        if self.commands.get("") is not None:
            raise ProgrammingError("root command already registered")
        command = _body(callback)
        command.isroot = True
        return self._add("", command, **options)

    def add_hidden(self, name, callback, description="", /, **options):
        """Register a command listed only with --mcli-show-hidden."""
        return self._add(name, _body(callback), description, hidden=True, **options)

    def add_alias(self, alias, target, /, **options):
        """
        Register alias as another name of target, sharing its body.

        Raises
        - ProgrammingError: target is not registered.
        """
        if (command := self.commands.get(target)) is None:
            raise ProgrammingError(f"alias target {normalize(target)!r} is not a registered command")
        return self._add(
            alias,
            command.clone(),
            f'Alias of command "{command.name}"',
            aliasof=command.name,
            hidden=command.hidden,
            **options,
        )

    def add_group(self, name, description="", /, **options):
        """Register a group: running it alone prints the usage of its sub-commands."""
        def group(ctx):
            ctx.parse(None)
            ctx.print_help()

        command = Command(group)
        command.isgroup = True
        return self._add(name, command, description, **options)

    def add_help(self):
        """Register "help [command...]"."""
        def help(ctx):
            if not ctx.ambiguous:
                ParsingContext(self, command=self.commands.get("")).print_usage()
                return
            self._dispatch([*ctx.ambiguous, "-h"])

        return self._add("help", Command(help), "Help about any command")

    def add_completion(self, name="completion", /):
        """Register the group printing shell completion scripts ("completion bash", ...)."""
        self.completion_name = name = normalize(name)

        def group(ctx):
            ctx.parse(None, disable_global_flags=True)
            ctx.print_help()

        command = Command(group, no_completion=True)
        command.iscompletion = True
        command.isgroup = True
        self._add(name, command, "Generate shell completion scripts")

        for shell in scripts.SHELLS:
            command = Command(self._emitter(shell), no_completion=True)
            command.iscompletion = True
            self._add(f"{name} {shell}", command, f"Generate the completion script for {shell}")

    def _emitter(self, shell, /):
        def emit(ctx):
            ctx.parse(
                None,
                disable_global_flags=True,
                usage=lambda: scripts.usage(shell, progname(), self.completion_name),
            )
            print(
                scripts.script(shell, progname(), self.completion_name),
                file=self.completion_out if self.completion_out is not None else sys.stdout
            )
        return rename(emit, f"complete_{shell}")

    # --- invocation ---

    def execute(self, command, context, /):
        """Run a command body against a parsing context."""
        self.context = context
        return command.invoke(Context(self, context))

    def run(self, *args):
        """
        Route the command line (args, or sys.argv[1:] when empty) to a command.

        Completion requests print their candidates and return.
        """
        args = list(args) if args else sys.argv[1:]
        found, args, shell = hascompletionflag(args)
        if found:
            self._argv = args
            self.completion = Completion(self, args, shell)
            try:
                self.completion.run()
            except CompletionExit:
                pass
            finally:
                self.completion = None
            return None
        return self._dispatch(args)

    def _dispatch(self, args, /):
        self._argv = list(args)
        self.commands.sort()
        route = self.commands.search(args)

        if route.command is not None:
            return self.execute(route.command, ParsingContext(
                self, command=route.command, name=route.name, args=route.args, ambiguous=route.ambiguous
            ))

        root = self.commands.get("")
        if root is not None and (not args or args[0].startswith("-") or not route.name):
            return self.execute(root, ParsingContext(self, command=root))

        context = self.context = ParsingContext(self, name=route.name, args=route.args, ambiguous=route.ambiguous)
        context.showhidden = hasboolflag(SHOW_HIDDEN, args)
        if not route.hassub and (invalid := route.invalidname):
            return trigger(
                InvalidCommandError(
                    f"'{invalid}' is not a valid command. See '{progname()} -h' for help.",
                    code=FaultCode.INVALID_COMMAND,
                    suggestions=self.commands.suggest(invalid),
                ),
                console=self.console,
                colorful=self.colorful,
                usage=context.print_usage,
                handling=self.handling,
            )
        context.print_usage()
        return None

    def parse(self, record=None, /, **options):
        """
        Parse the command line for the current invocation.

        Outside a command body this parses sys.argv[1:] (or the "args" option)
        as an anonymous command.
        """
        if self.context is None or self.context.parsed:
            self.context = ParsingContext(self)
        return self.context.parse(record, **options)

    def print_help(self):
        """Print the usage of the current invocation."""
        if self.context is None:
            self.context = ParsingContext(self)
        self.context.print_usage()


__all__ = (
    "App",
    "Context",
    "new_command",
)
