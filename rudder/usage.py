"""
Rudder help renderer.

render(context) assembles the help of an invocation as plain text, section by
section:

    <description>

    USAGE:
      prog cmd [flags] <arg> [rest...]

    COMMANDS:              (or one block per category)
    FLAGS:
    ARGUMENTS:
    GLOBAL FLAGS:
    EXAMPLES:
    <footer>

Every two-column block aligns its descriptions on the widest entry prefix
(prefixes wider than 36 columns put their description on the next line).
"""
import re
import textwrap

from .utils import parentof, progname

MAX_PREFIX = 36


def _maxprefix(groups, /):
    width = 0
    for lines in groups:
        for prefix, _ in lines:
            if width < len(prefix) <= MAX_PREFIX:
                width = len(prefix)
    return width


def aligned(lines, width=0, /):
    """Render (prefix, text) pairs with the texts aligned on one column."""
    if width <= 0:
        width = _maxprefix([lines])
    padding = "\n" + " " * (width + 4)
    output = []
    for prefix, text in lines:
        output.append(prefix)
        if text:
            if len(prefix) <= MAX_PREFIX:
                output.append(" " * (width + 4 - len(prefix)))
            else:
                output.append(padding)
            output.append(text.replace("\n", padding))
        output.append("\n")
    return "".join(output)


def _description(context, /):
    app = context.app
    command = context.command
    name = context.name
    summary = app.description.strip()
    text = ""
    if command is not None:
        if command.isroot:
            if summary:
                text += summary + "\n"
        else:
            target = command
            if command.aliasof and (aliased := app.commands.get(command.aliasof)) is not None:
                text += command.description + "\n"
                target = aliased
                name = target.name
            if target.description:
                text += target.description + "\n"
        if longdesc := command.options.get("long_desc", "").strip():
            if text:
                text += "\n"
            text += longdesc + "\n"
    elif summary:
        text += summary + "\n"
    if text:
        text += "\n"
    return text, name


def _synopsis(context, name, children, /):
    text = f" {name}" if name else ""
    if context.flags:
        text += " [flags]"
    for argument in context.positionals:
        label = argument.name + {"sequence": "...", "mapping": "{...}"}.get(argument.kind, "")
        text += f" <{label}>" if argument.required else f" [{label}]"
    if not context.flags and not context.positionals and children:
        text += " <command> ..."
    return text


def _usageline(context, children, /):
    prog = progname()
    text, name = _description(context)
    text += "USAGE:\n  " + prog
    if context.command is not None and context.command.isroot:
        text += _synopsis(context, "", children)
        if any(command.name for command in context.app.commands):
            text += f"\n  {prog} <command> [flags] ..."
    else:
        text += _synopsis(context, name, children)
    return text + "\n\n"


def _commandlines(children, showhidden, /):
    lines = []
    prefixes = [""]
    previous = ""
    for command in children:
        if not command.name or (command.hidden and not showhidden):
            continue
        if previous and command.name != previous:
            if parentof(previous, command.name):
                prefixes.append(previous)
            else:
                for index in range(len(prefixes) - 1, 0, -1):
                    if not parentof(prefixes[index], command.name):
                        del prefixes[index:]
        leaf = command.name.removeprefix(prefixes[-1]).strip()
        if command.iscompletion and leaf != command.name:
            continue
        label = "  " * len(prefixes) + leaf
        if command.hidden:
            label += " (HIDDEN)"
        lines.append((label, command.description))
        previous = command.name
    return lines


def _commands(context, children, /):
    if not children:
        return ""
    app = context.app
    keeporder = app.keep_command_order
    if keeporder:
        children = sorted(children, key=lambda command: command.index)

    if categories := app.commands.categories(children, keeporder=keeporder):
        groups = []
        for category, commands in categories:
            lines = [
                ("  " + command.name + (" (HIDDEN)" if command.hidden else ""), command.description)
                for command in commands
                if command.name and (not command.hidden or context.showhidden) and command.level <= 1
            ]
            if lines:
                groups.append((category, lines))
        width = _maxprefix(lines for _, lines in groups)
        return "".join(
            (category if category.endswith(":") else category + ":") + "\n" + aligned(lines, width) + "\n"
            for category, lines in groups
        )

    return "COMMANDS:\n" + aligned(_commandlines(children, context.showhidden)) + "\n"


def _block(title, lines, /):
    if not lines:
        return ""
    return f"{title}:\n" + aligned(lines) + "\n"


def _examples(context, /):
    if context.command is None:
        return ""
    if not (examples := textwrap.dedent(context.command.options.get("examples", "")).strip()):
        return ""
    examples = re.sub(r"\n\s+\n", "\n\n", examples.replace("\n", "\n  "))
    return f"EXAMPLES:\n  {examples}\n\n"


def _footer(context, /):
    if (footer := context.options.get("footer")) is not None:
        return footer().strip() + "\n\n"
    if context.app.help_footer:
        return context.app.help_footer.strip() + "\n\n"
    return ""


def render(context, /):
    """
    Render the help of a parsing context.

    A replaced usage (the "usage" parse option) is dedented, trimmed and used
    verbatim instead of the generated document.
    """
    if (custom := context.options.get("usage")) is not None:
        return textwrap.dedent(custom()).strip() + "\n\n"

    app = context.app
    app.commands.sort()
    children = app.commands.children(context.name, context.showhidden)

    visible = [argument for argument in context.flags if not argument.hidden or context.showhidden]
    hasshort = any(argument.short for argument in visible)

    return "".join((
        _usageline(context, children),
        _commands(context, children),
        _block("FLAGS", [argument.usage(hasshort) for argument in visible if not argument.isglobal]),
        _block("ARGUMENTS", [argument.usage(False) for argument in context.positionals]),
        _block("GLOBAL FLAGS", [argument.usage(hasshort) for argument in visible if argument.isglobal]),
        _examples(context),
        _footer(context),
    ))


__all__ = ()
