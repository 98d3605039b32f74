"""Non-blocking keyboard listener."""

import select
import sys
import termios
import tty

ESC = 27


class KeyboardListener:
    """Non-blocking keyboard listener.

    Detects ESC while a response streams. Puts the terminal in cbreak mode
    for its lifetime; use as a context manager so the terminal is restored.
    """

    def __init__(self):
        self.fd = sys.stdin.fileno()
        self.old_settings = termios.tcgetattr(self.fd)
        # cbreak mode so ESC is delivered immediately and not echoed
        tty.setcbreak(self.fd)

    def __enter__(self) -> "KeyboardListener":
        return self

    def __exit__(self, *exc_info):
        self.restore()

    def check_esc(self) -> bool:
        """Return True if ESC was pressed since the last check."""
        rlist, _, _ = select.select([sys.stdin], [], [], 0)
        if rlist:
            char = sys.stdin.read(1)
            return bool(char) and ord(char) == ESC
        return False

    def restore(self):
        """Restore the terminal settings."""
        termios.tcsetattr(self.fd, termios.TCSADRAIN, self.old_settings)
