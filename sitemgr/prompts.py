"""Interactive prompt helpers on top of rich.prompt."""

from __future__ import annotations

from typing import Sequence

from rich.prompt import Confirm, IntPrompt, Prompt

from sitemgr.utils import console


def ask(text: str, default: str | None = None) -> str:
    if default is None:
        return Prompt.ask(text, console=console).strip()
    return Prompt.ask(text, default=default, console=console).strip()


def ask_required(text: str) -> str:
    while True:
        value = ask(text)
        if value:
            return value
        console.print("[red]A value is required.[/red]")


def ask_secret(text: str) -> str:
    return Prompt.ask(text, password=True, default="", show_default=False, console=console)


def confirm(text: str, default: bool = False) -> bool:
    return Confirm.ask(text, default=default, console=console)


def choose(text: str, options: Sequence[str], default: int = 1) -> int:
    """Numbered list; returns the 0-based index of the chosen option."""
    for number, label in enumerate(options, start=1):
        console.print(f"  {number}) {label}")
    choices = [str(n) for n in range(1, len(options) + 1)]
    picked = IntPrompt.ask(
        text, choices=choices, default=default, show_choices=False, console=console
    )
    return picked - 1
