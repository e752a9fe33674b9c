"""
State test error taxonomy.

Every way a single state test can end other than success is one of these
errors. `is_skip()` separates tests that fell outside the supported envelope
(recorded as Ignored) from genuine failures.
"""

from eth_utils import encode_hex


class StateTestError(Exception):
    """Base class of the closed state test error taxonomy."""

    def is_skip(self) -> bool:
        return False


class CannotGenerateCircuitInput(StateTestError):
    """The witness builder rejected an accepted trace."""

    def __init__(self, reason: str):
        super().__init__(f"CannotGenerateCircuitInput({reason})")
        self.reason = reason


class BalanceMismatch(StateTestError):
    def __init__(self, expected: int, found: int):
        super().__init__(f"BalanceMismatch(expected:{expected}, found:{found})")
        self.expected = expected
        self.found = found


class NonceMismatch(StateTestError):
    def __init__(self, expected: int, found: int):
        super().__init__(f"NonceMismatch(expected:{expected}, found:{found})")
        self.expected = expected
        self.found = found


class CodeMismatch(StateTestError):
    def __init__(self, expected: bytes, found: bytes):
        super().__init__(
            f"CodeMismatch(expected: {encode_hex(expected)}, found:{encode_hex(found)})"
        )
        self.expected = expected
        self.found = found


class StorageMismatch(StateTestError):
    def __init__(self, slot: int, expected: int, found: int):
        super().__init__(f"StorageMismatch(slot:{slot} expected:{expected}, found: {found})")
        self.slot = slot
        self.expected = expected
        self.found = found


class ExceptionMismatch(StateTestError):
    """
    The tracer outcome disagrees with the fixture's expected-exception flag.

    `found` is "no error" when an exception was expected but the trace
    succeeded, otherwise the tracer's fault text.
    """

    def __init__(self, expected: bool, found: str):
        super().__init__(f'Exception(expected:{str(expected).lower()}, found:"{found}")')
        self.expected = expected
        self.found = found


class SkipTestMaxGasLimit(StateTestError):
    def __init__(self, gas: int):
        super().__init__(f"SkipTestMaxGasLimit({gas})")
        self.gas = gas

    def is_skip(self) -> bool:
        return True


class SkipTestMaxSteps(StateTestError):
    def __init__(self, steps: int):
        super().__init__(f"SkipTestMaxSteps({steps})")
        self.steps = steps

    def is_skip(self) -> bool:
        return True


class SkipTestSelfDestruct(StateTestError):
    def __init__(self):
        super().__init__("SkipTestSelfDestruct")

    def is_skip(self) -> bool:
        return True


class SkipTestBalanceOverflow(StateTestError):
    def __init__(self):
        super().__init__("SkipTestBalanceOverflow")

    def is_skip(self) -> bool:
        return True
