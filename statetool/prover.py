"""
statetool Proving Step

The prover checks a finished witness. Its observable outcomes are: pass, a
structured fault carrying a `FaultKind`, or an unstructured fault whose text
is classified by `classify_fault_text`.
"""

import json
import subprocess
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from .logger import get_logger
from .constants import FAULT_TEXT_UNIMPLEMENTED, FAULT_TEXT_UNSATISFIED, SUPER_CIRCUIT_DEGREE
from .exceptions import StateToolException

logger = get_logger(__name__)


class FaultKind(Enum):
    UNSATISFIED = "unsatisfied"
    UNIMPLEMENTED = "unimplemented"


class ProverFault(StateToolException):
    """The prover rejected a witness."""

    def __init__(self, message: str, kind: Optional[FaultKind] = None):
        super().__init__(message)
        self.kind = kind


# Substring table for fault text that carries no structured kind
_FAULT_TEXT_KINDS = (
    (FAULT_TEXT_UNSATISFIED, FaultKind.UNSATISFIED),
    (FAULT_TEXT_UNIMPLEMENTED, FaultKind.UNIMPLEMENTED),
)


def classify_fault_text(text: str) -> Optional[FaultKind]:
    """Map unstructured fault text to a FaultKind, or None if unknown."""
    for needle, kind in _FAULT_TEXT_KINDS:
        if needle in text:
            return kind
    return None


def fault_kind(err: BaseException) -> Optional[FaultKind]:
    """The structured kind of a fault, falling back to its text."""
    kind = getattr(err, "kind", None)
    if isinstance(kind, FaultKind):
        return kind
    return classify_fault_text(str(err))


class Prover(ABC):

    @abstractmethod
    def prove(self, witness, super_circuit: bool) -> None:
        """
        Prove a witness.

        Raises:
            ProverFault: If the witness does not satisfy the circuits
        """


class CommandProver(Prover):
    """
    Runs an external prover command with the witness as JSON on stdin.

    The command receives `--super-circuit --degree N` for super circuit runs.
    A non-zero exit status is a fault; stderr is its message.
    """

    def __init__(self, argv: List[str], timeout: Optional[float] = None):
        if not argv:
            raise ValueError("prover command must not be empty")
        self.argv = list(argv)
        self.timeout = timeout

    def prove(self, witness, super_circuit: bool) -> None:
        args = list(self.argv)
        if super_circuit:
            args += ["--super-circuit", "--degree", str(SUPER_CIRCUIT_DEGREE)]

        payload = json.dumps(witness.to_dict())
        logger.debug("running prover: %s", " ".join(args))
        try:
            proc = subprocess.run(
                args,
                input=payload,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ProverFault(f"prover command not found: {e}")
        except subprocess.TimeoutExpired:
            raise ProverFault(f"prover timed out after {self.timeout}s")

        if proc.returncode != 0:
            message = proc.stderr.strip() or f"prover exited with status {proc.returncode}"
            raise ProverFault(message, classify_fault_text(message))


def make_prover(argv: List[str]) -> Optional[Prover]:
    """A CommandProver for a non-empty command, otherwise None (proving skipped)."""
    if not argv:
        return None
    return CommandProver(argv)
