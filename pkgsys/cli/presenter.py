"""
User interaction for the command line and popup UI modes.

TerminalPresenter talks on stdin/stdout, WhiptailPresenter shows dialogs
with whiptail(1). Both turn the rich text used for license texts into
plain text.
"""

import html
import logging
import re
import shutil
import subprocess
import sys
from typing import List

from ..core.backend import Presenter, SelectorResult
from . import colors

logger = logging.getLogger(__name__)

WHIPTAIL_BINARY = "whiptail"

SELECTOR_QUESTION = "Continue with the partial selection anyway?"
REPO_HINT = "Check the repository definitions if packages are missing."

_TAG_RE = re.compile(r'<[^>]+>')
_BREAK_RE = re.compile(r'<\s*(br|/p)\s*/?>', re.IGNORECASE)


def strip_html(text: str) -> str:
    """Rich text to plain text: line breaks kept, tags dropped."""
    text = _BREAK_RE.sub('\n', text)
    return html.unescape(_TAG_RE.sub('', text))


class TerminalPresenter(Presenter):
    """Command line interaction.

    With auto=True every yes/no question is answered yes, the way
    `--yes` works for unattended runs. The package selector is never
    continued automatically.
    """

    def __init__(self, auto: bool = False):
        self.auto = auto

    def print(self, text: str):
        print(text)

    def yes_no(self, question: str) -> bool:
        if self.auto:
            print(f"{question} [y/N] y")
            return True
        try:
            answer = input(f"{question} [y/N] ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nAborted")
            return False
        return answer.lower() in ('y', 'yes')

    def any_question_rich_text(self, heading: str, text: str, width: int,
                               height: int, yes_label: str = "Yes",
                               no_label: str = "No") -> bool:
        print(colors.bold(heading))
        print(strip_html(text))
        return self.yes_no(f"{yes_label}?")

    def message(self, text: str):
        print(colors.info(text))

    def error(self, text: str):
        print(colors.error(f"Error: {text}"), file=sys.stderr)

    def show_update_messages(self, messages: List[str]):
        if not messages:
            return
        print(colors.bold("\nPackage notes:"))
        for msg in messages:
            print(f"  {msg}")

    def run_package_selector(self, enable_repo_mgr: bool, mode: str) -> SelectorResult:
        logger.debug(f"Package selector: mode={mode}, repo_mgr={enable_repo_mgr}")
        if enable_repo_mgr:
            print(colors.warning(REPO_HINT))
        if self.auto:
            return SelectorResult.CANCEL
        try:
            answer = input(f"{SELECTOR_QUESTION} [y/N] ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nAborted")
            return SelectorResult.CLOSE
        if answer.lower() in ('y', 'yes'):
            return SelectorResult.CONTINUE
        return SelectorResult.CANCEL


class WhiptailPresenter(Presenter):
    """Popup dialogs through whiptail."""

    WIDTH = 70
    HEIGHT = 20

    def __init__(self, binary: str = WHIPTAIL_BINARY):
        self.binary = binary

    @staticmethod
    def available(binary: str = WHIPTAIL_BINARY) -> bool:
        return shutil.which(binary) is not None

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        # whiptail draws on the terminal and writes menu choices to stderr
        cmd = [self.binary] + args
        logger.debug(f"Running {cmd[:3]}")
        return subprocess.run(cmd, stderr=subprocess.PIPE, text=True)

    def _msgbox(self, title: str, text: str):
        self._run(['--title', title, '--scrolltext', '--msgbox', text,
                   str(self.HEIGHT), str(self.WIDTH)])

    def print(self, text: str):
        self._msgbox("Information", text)

    def yes_no(self, question: str) -> bool:
        return self._run(['--yesno', question, '10', str(self.WIDTH)]).returncode == 0

    def any_question_rich_text(self, heading: str, text: str, width: int,
                               height: int, yes_label: str = "Yes",
                               no_label: str = "No") -> bool:
        result = self._run([
            '--title', heading,
            '--yes-button', yes_label, '--no-button', no_label,
            '--scrolltext', '--yesno', strip_html(text),
            str(height), str(width),
        ])
        return result.returncode == 0

    def message(self, text: str):
        self._msgbox("Information", text)

    def error(self, text: str):
        self._msgbox("Error", text)

    def show_update_messages(self, messages: List[str]):
        if messages:
            self._msgbox("Package notes", "\n\n".join(messages))

    def run_package_selector(self, enable_repo_mgr: bool, mode: str) -> SelectorResult:
        logger.debug(f"Package selector: mode={mode}, repo_mgr={enable_repo_mgr}")
        text = SELECTOR_QUESTION
        if enable_repo_mgr:
            text = f"{REPO_HINT}\n\n{text}"

        result = self._run([
            '--title', "Unresolved dependencies",
            '--menu', text, str(self.HEIGHT), str(self.WIDTH), '2',
            'continue', "Continue with the partial selection",
            'cancel', "Cancel the transaction",
        ])
        # 255 is ESC or a closed dialog
        if result.returncode == 255:
            return SelectorResult.CLOSE
        if result.returncode == 0 and result.stderr.strip() == 'continue':
            return SelectorResult.CONTINUE
        return SelectorResult.CANCEL
