"""!
@brief Operator prompts.
@details Yes/no questions accept ``y``, ``yes``, ``n`` and ``no`` in any case
and ask again on anything else. End of input answers "no" so a closed stdin
never leaves the run waiting.
"""

from __future__ import annotations

from typing import Callable

YES_ANSWERS = ("y", "yes")
NO_ANSWERS = ("n", "no")

REINSTALL_PROMPT = "{product} is already installed. Reinstall it? (y/n) "
REBOOT_PROMPT = "A reboot is required to finish provisioning. Reboot now? (y/n) "
ACKNOWLEDGE_PROMPT = "Press Enter to exit..."


def ask_yes_no(prompt: str, *, input_func: Callable[[str], str] | None = None) -> bool:
    """!
    @brief Ask ``prompt`` until the operator answers yes or no.
    @returns ``True`` for yes.
    """

    if input_func is None:
        input_func = input

    while True:
        try:
            response = input_func(prompt)
        except EOFError:
            return False
        normalized = response.strip().lower()
        if normalized in YES_ANSWERS:
            return True
        if normalized in NO_ANSWERS:
            return False
        print("Please answer y, yes, n or no.")


def acknowledge(*, input_func: Callable[[str], str] | None = None) -> None:
    """!
    @brief Block until the operator presses Enter.
    """

    if input_func is None:
        input_func = input
    try:
        input_func(ACKNOWLEDGE_PROMPT)
    except EOFError:
        pass


__all__ = [
    "ACKNOWLEDGE_PROMPT",
    "REBOOT_PROMPT",
    "REINSTALL_PROMPT",
    "acknowledge",
    "ask_yes_no",
]
