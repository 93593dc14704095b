"""Base exception for every Kikai failure.

Each component raises its own subclass. The ``stage`` attribute names the
pipeline stage that failed so the CLI can report it.
"""

import _thread
import threading


class KikaiError(Exception):
    """Base exception for Kikai errors."""

    stage = "kikai"


def propagate_interrupt(ke: KeyboardInterrupt) -> None:
    """Re-raise a KeyboardInterrupt caught during cleanup.

    The main thread is interrupted as well, so Ctrl-C still stops the run
    when the interrupt was caught on a worker thread (e.g. inside a progress
    callback).

    Raises:
        KeyboardInterrupt: Always
    """
    if threading.current_thread() is not threading.main_thread():
        _thread.interrupt_main()
    raise ke
