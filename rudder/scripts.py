"""
Shell completion scripts and the help text of the commands that print them.

Every script re-invokes the program with the words typed so far, the word under
the cursor (possibly empty) and the trailing "--mcli-generate-completion SHELL"
sentinel, then feeds the printed candidates to the shell.

Placeholders
- %%{prog}: the program name.
- %%{command}: the name of the completion command group.
"""
import string

SHELLS = ("bash", "zsh", "fish", "powershell")


class _Template(string.Template):
    delimiter = "%%"


_SCRIPTS = {
    "bash": r"""
#!/bin/bash

_%%{prog}_completions() {
  local cur opts
  COMPREPLY=()
  cur="${COMP_WORDS[COMP_CWORD]}"
  opts=$("${COMP_WORDS[0]}" "${COMP_WORDS[@]:1:$((COMP_CWORD - 1))}" "${cur}" --mcli-generate-completion bash 2>/dev/null)
  if [[ -z "${opts}" ]]; then
    return 0
  fi
  local IFS=$'\n'
  COMPREPLY=($(compgen -W "$(printf '%s\n' "${opts}" | cut -f1)" -- "${cur}"))
  return 0
}

complete -o bashdefault -o default -F _%%{prog}_completions %%{prog}
""",
    "zsh": r"""
#compdef %%{prog}

_%%{prog}() {
  local -a opts
  local cur
  cur=${words[CURRENT]}
  opts=("${(@f)$(${words[1]} ${words[2,CURRENT-1]} "${cur}" --mcli-generate-completion zsh 2>/dev/null)}")
  if [[ -n "${opts[1]}" ]]; then
    _describe 'values' opts
  else
    _files
  fi
}

if [ "$funcstack[1]" = "_%%{prog}" ]; then
  _%%{prog} "$@"
else
  compdef _%%{prog} %%{prog}
fi
""",
    "fish": r"""
function __%%{prog}_complete
    set -l words (commandline -opc)
    set -l cur (commandline -ct)
    command $words[1] $words[2..-1] "$cur" --mcli-generate-completion fish 2>/dev/null
end

complete -c %%{prog} -f -a '(__%%{prog}_complete)'
""",
    "powershell": r"""
Register-ArgumentCompleter -Native -CommandName '%%{prog}' -ScriptBlock {
    param($wordToComplete, $commandAst, $cursorPosition)
    $elements = @($commandAst.CommandElements | ForEach-Object { $_.ToString() })
    $arguments = @($elements | Select-Object -Skip 1)
    if ($wordToComplete -ne '') {
        $arguments = @($arguments | Select-Object -SkipLast 1)
    }
    $candidates = & $elements[0] @arguments "$wordToComplete" --mcli-generate-completion powershell 2>$null
    $candidates | Where-Object { $_ } | ForEach-Object {
        [System.Management.Automation.CompletionResult]::new($_, $_, 'ParameterValue', $_)
    }
}
""",
}

_USAGES = {
    "bash": """
Generate the autocompletion script for the bash shell.

The script depends on the 'bash-completion' package.
If it is not installed already, you can install it via your OS's package manager.

To load completions in your current shell session:

\tPROG=%%{prog}; source <(%%{prog} %%{command} bash)

To load completions for every new session, execute once:

#### Linux:

\tPROG=%%{prog}; %%{prog} %%{command} bash > /etc/bash_completion.d/%%{prog}

#### macOS:

\tPROG=%%{prog}; %%{prog} %%{command} bash > $(brew --prefix)/etc/bash_completion.d/%%{prog}

You will need to start a new shell for this setup to take effect.

USAGE:
  %%{prog} %%{command} bash
""",
    "zsh": """
Generate the autocompletion script for the zsh shell.

If shell completion is not already enabled in your environment you will need
to enable it.  You can execute the following once:

\techo "autoload -U compinit; compinit" >> ~/.zshrc

To load completions in your current shell session:

\tPROG=%%{prog}; source <(%%{prog} %%{command} zsh)

To load completions for every new session, execute once:

#### Linux:

\tPROG=%%{prog}; %%{prog} %%{command} zsh > "${fpath[1]}/_%%{prog}"

#### macOS:

\tPROG=%%{prog}; %%{prog} %%{command} zsh > $(brew --prefix)/share/zsh/site-functions/_%%{prog}

You will need to start a new shell for this setup to take effect.

USAGE:
  %%{prog} %%{command} zsh
""",
    "fish": """
Generate the autocompletion script for the fish shell.

To load completions in your current shell session:

\t%%{prog} %%{command} fish | source

To load completions for every new session, execute once:

\t%%{prog} %%{command} fish > ~/.config/fish/completions/%%{prog}.fish

You will need to start a new shell for this setup to take effect.

USAGE:
  %%{prog} %%{command} fish
""",
    "powershell": """
Generate the autocompletion script for powershell.

To load completions in your current shell session:

\t%%{prog} %%{command} powershell | Out-String | Invoke-Expression

To load completions for every new session, add the output of the above command
to your powershell profile.

USAGE:
  %%{prog} %%{command} powershell
""",
}


def script(shell, prog, command, /):
    """Render the completion script of a shell."""
    return _Template(_SCRIPTS[shell]).substitute(prog=prog, command=command).strip("\n")


def usage(shell, prog, command, /):
    """Render the help text of the command printing a shell's script."""
    return _Template(_USAGES[shell]).substitute(prog=prog, command=command)


__all__ = (
    "SHELLS",
)
