# errors.py
"""Exceptions raised by the scanner.  Everything derives from ``ScannerError``."""


class ScannerError(Exception):
    """Base class for all scanner failures."""


class RadioError(ScannerError):
    """The radio collaborator failed to start or stop scanning."""


class RadioUnavailableError(RadioError):
    """No usable adapter: powered off, missing, or permission denied."""


class InvalidTransitionError(ScannerError):
    """A watcher operation was requested from a state that does not allow it."""

    def __init__(self, operation: str, state) -> None:
        super().__init__(f"cannot {operation} watcher in state {state.name}")
        self.operation = operation
        self.state = state


class ScanStartError(ScannerError):
    """The scan session could not start listening at all."""
