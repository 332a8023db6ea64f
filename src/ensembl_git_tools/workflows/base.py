"""
Console helpers shared by the interactive workflows.
"""

import logging
from typing import Optional

import click

logger = logging.getLogger(__name__)

CONTINUE_PROMPT = "* OK to continue?"


def confirm(message: Optional[str] = None, enabled: bool = True) -> bool:
    """
    Ask the user whether to carry on.

    Args:
        message: Text shown before the question
        enabled: When False nothing is asked and the answer is yes

    Returns:
        True if the user agreed (or prompting is disabled)
    """
    if message:
        click.echo(f"*  {message}")
    if not enabled:
        logger.debug(f"Prompting disabled; continuing past '{message or CONTINUE_PROMPT}'")
        return True
    return click.confirm(CONTINUE_PROMPT, default=False)


class Console:
    """
    Progress and error output in the ``*  `` / ``!! `` style.

    Progress goes to stdout, errors to stderr.
    """

    def __init__(self, prompt: bool = True):
        self.prompt = prompt

    def step(self, message: str) -> None:
        click.echo(f"*  {message}")

    def error(self, message: str) -> None:
        click.echo(f"!! {message}", err=True)

    def confirm(self, message: Optional[str] = None) -> bool:
        return confirm(message, enabled=self.prompt)
