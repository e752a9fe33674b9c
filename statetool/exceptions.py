"""
statetool Exceptions

Custom exception classes for the state test runner.
"""


class StateToolException(Exception):
    """Base exception for statetool."""
    pass


class FixtureError(StateToolException):
    """A fixture file could not be parsed into state tests."""
    pass


class InvalidKeyError(StateToolException):
    """Invalid cryptographic key."""
    pass


class ConfigurationError(StateToolException):
    """Configuration error."""
    pass


class ResultStoreError(StateToolException):
    """Result store could not record or load an outcome."""
    pass


class DuplicateResultError(ResultStoreError):
    """An outcome for this key was already recorded."""

    def __init__(self, key: str):
        super().__init__(f"result already recorded for {key}")
        self.key = key


class TracerFault(StateToolException):
    """
    The tracer rejected or failed to execute the transaction.

    This is the "fault" outcome of trace acquisition. Whether it fails a
    test depends on the fixture's expected-exception flag.
    """
    pass
