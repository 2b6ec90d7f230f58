"""
Shell detection

Used by `envctl hook` and `envctl export` when no shell is named.
"""

import os


def detect_shell() -> str:
    """
    Auto-detect shell from environment.

    Returns:
        str: bash, zsh or fish (bash when $SHELL is something else)
    """
    shell_path = os.path.basename(os.environ.get("SHELL", ""))

    if "zsh" in shell_path:
        return "zsh"
    elif "fish" in shell_path:
        return "fish"

    # Fallback to bash
    return "bash"
