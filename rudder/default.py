"""
Module-level facade over a process-wide default App.

    import rudder

    rudder.add("serve", serve, "Start the server")
    rudder.add_help()
    rudder.run()
"""
from .app import App

_app = App()


def default_app():
    """The App behind the module-level functions."""
    return _app


def reset(**options):
    """Replace the default App with a fresh one built from options (see App)."""
    global _app
    _app = App(**options)
    return _app


def set_options(**options):
    """Update attributes of the default App (help_footer, allow_posix_stmo, ...)."""
    for name, value in options.items():
        if name not in ("description", "help_footer", "keep_command_order", "allow_posix_stmo",
                        "enable_flag_completion_for_all", "handling", "completion_out"):
            raise TypeError(f"set_options() got an unexpected option {name!r}")
        setattr(_app, name, value)


def keep_command_order():
    """List commands and flags in registration order in help."""
    _app.keep_command_order = True


def set_global_flags(record, /):
    return _app.set_global_flags(record)


def add(name, callback, description="", /, **options):
    return _app.add(name, callback, description, **options)


def add_root(callback, /, **options):
    return _app.add_root(callback, **options)


def add_alias(alias, target, /, **options):
    return _app.add_alias(alias, target, **options)


def add_hidden(name, callback, description="", /, **options):
    return _app.add_hidden(name, callback, description, **options)


def add_group(name, description="", /, **options):
    return _app.add_group(name, description, **options)


def add_help():
    return _app.add_help()


def add_completion(name="completion", /):
    return _app.add_completion(name)


def run(*args):
    return _app.run(*args)


def parse(record=None, /, **options):
    return _app.parse(record, **options)


def print_help():
    return _app.print_help()


__all__ = (
    "default_app",
    "reset",
    "set_options",
    "keep_command_order",
    "set_global_flags",
    "add",
    "add_root",
    "add_alias",
    "add_hidden",
    "add_group",
    "add_help",
    "add_completion",
    "run",
    "parse",
    "print_help",
)
