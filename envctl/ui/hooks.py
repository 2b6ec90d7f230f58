"""
Shell hook snippets printed by `envctl hook <shell>`.

Each hook runs `envctl export` before every command with the shell's own
ENVCTL_GEN and PWD, then evaluates the returned script. Users install one
with e.g. ``eval "$(envctl hook bash)"``.
"""

from envctl.daemon.export import ShellKind

BASH_HOOK = r"""# envctl bash hook
# Apply env diffs safely (idempotent, uses ENVCTL_GEN)
__envctl_apply() {
  local out
  out="$(envctl export bash --since "${ENVCTL_GEN:-0}" --pwd "$PWD")" || return
  eval "$out"
}

# DEBUG trap runs before each command; disable trap during apply to avoid recursion
__envctl_debug_trap() {
  trap - DEBUG
  __envctl_apply
  trap '__envctl_debug_trap' DEBUG
}

trap '__envctl_debug_trap' DEBUG

# Apply once at shell start
__envctl_apply
"""

ZSH_HOOK = r"""# envctl zsh hook
autoload -U add-zsh-hook
envctl_preexec() {
  local out
  out="$(envctl export zsh --since "${ENVCTL_GEN:-0}" --pwd "$PWD")" || return
  eval "$out"
}
add-zsh-hook preexec envctl_preexec
# Apply once at shell start
envctl_preexec
"""

FISH_HOOK = r"""# envctl fish hook
function __envctl_apply
  set -q ENVCTL_GEN; or set -l ENVCTL_GEN 0
  envctl export fish --since "$ENVCTL_GEN" --pwd "$PWD" | source
end
function __envctl_preexec --on-event fish_preexec
  __envctl_apply
end
function __envctl_prompt --on-event fish_prompt
  __envctl_apply
end
# Apply once at shell start
__envctl_apply
"""

_HOOKS = {
    ShellKind.BASH: BASH_HOOK,
    ShellKind.ZSH: ZSH_HOOK,
    ShellKind.FISH: FISH_HOOK,
}


def hook_for(shell: ShellKind) -> str:
    return _HOOKS[shell]
