#!/usr/bin/env python3
"""
Main entry point for the Typer-based envctl CLI.

This delegates to the UI layer in envctl.ui.cli to keep the
console script mapping stable.
"""

from envctl.ui.cli import run as envctl


if __name__ == "__main__":
    envctl()
