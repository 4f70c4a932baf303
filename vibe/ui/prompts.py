"""Terminal prompts used for confirmation and API key entry."""

import getpass
import sys


class ConsolePrompter:
    """Blocking prompts on stdin/stdout."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout

    def show(self, text: str) -> None:
        print(text, file=self.stream)

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask a yes/no question; empty input returns default."""
        suffix = " [Y/n] " if default else " [y/N] "
        try:
            answer = input(message + suffix).strip().lower()
        except EOFError:
            return default
        if not answer:
            return default
        return answer in ("y", "yes")

    def ask_secret(self, message: str) -> str:
        """Read a value without echoing it."""
        try:
            return getpass.getpass(message + " ")
        except EOFError:
            return ""
