"""Interruptible waits shared by the polling loops."""

import threading
import time


def is_cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


def pause(interval: float, cancel: threading.Event | None) -> bool:
    """Wait ``interval`` seconds. Returns True if ``cancel`` was set meanwhile."""
    if cancel is not None:
        return cancel.wait(interval) if interval > 0 else cancel.is_set()
    if interval > 0:
        time.sleep(interval)
    return False
