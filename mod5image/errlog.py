"""
errlog.py: The diagnostic channel for non-fatal problems.

Numerical retries, dropped torsion points and malformed intermediate data
are written here for post-hoc debugging. Nothing in the pipeline reads the
log back.
"""
import sys
import time

from .image_config import Fore, Style


class ErrorLog:
    """
    Text sink opened in append ('a') or overwrite ('w') mode.

    With path=None messages only go to stderr, and only when echo is set.
    """

    def __init__(self, path=None, mode='a', echo=False):
        if mode not in ('a', 'w'):
            raise ValueError(f"ErrorLog mode must be 'a' or 'w', got {mode!r}")
        self.path = path
        self.echo = echo
        self.count = 0
        self._fh = open(path, mode, encoding="utf-8") if path else None

    def write(self, tag, msg):
        self.count += 1
        line = f"{time.strftime('%Y-%m-%d %H:%M:%S')} [{tag}] {msg}"
        if self._fh is not None:
            self._fh.write(line + "\n")
            self._fh.flush()
        if self.echo:
            print(f"{Fore.YELLOW}{line}{Style.RESET_ALL}", file=sys.stderr)

    def close(self):
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class NullLog(ErrorLog):
    """Log that drops everything; the default when the caller passes none."""

    def __init__(self):
        super().__init__(path=None, echo=False)

    def write(self, tag, msg):
        self.count += 1
