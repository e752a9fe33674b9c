"""
Trace acquisition.

A backend is one of exactly two variants:

- `StepLogBackend` returns per-transaction step logs (plus the post alloc)
  and builds witnesses from a reconstructed block header.
- `BlockTraceBackend` returns a native `BlockTrace` and builds witnesses
  from it directly.

`acquire_trace` classifies the backend outcome against the fixture's
expected-exception flag; `check_geth_traces` applies the envelope guards.
"""

import io
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple, Union

from rich.console import Console
from rich.table import Table

from ..logger import get_logger
from ..config import TestSuite
from ..constants import STATETOOL_FORK
from ..exceptions import TracerFault
from .errors import (
    CannotGenerateCircuitInput,
    ExceptionMismatch,
    SkipTestBalanceOverflow,
    SkipTestMaxGasLimit,
    SkipTestMaxSteps,
    SkipTestSelfDestruct,
)
from .fixture import StateTest
from .request import TraceRequest
from .traces import BlockTrace, GethExecTrace, StepTraceResult
from .witness import (
    CircuitsParams,
    StateDB,
    Witness,
    build_witness_from_block_trace,
    build_witness_from_steps,
)

logger = get_logger(__name__)

TraceResult = Union[StepTraceResult, BlockTrace]


class ExecutionBackend(ABC):
    """Tracer plus the matching witness construction path."""

    name: str = ""
    native: bool = False

    def __init__(self, fork: str = str(STATETOOL_FORK)):
        self.fork = fork

    @abstractmethod
    def trace(self, request: TraceRequest) -> TraceResult:
        """
        Execute the request.

        Raises:
            TracerFault: If the tracer rejects or fails to execute the transaction
        """

    @abstractmethod
    def build_witness(
        self,
        request: TraceRequest,
        result: TraceResult,
        st: StateTest,
        circuits_params: CircuitsParams,
    ) -> Tuple[Witness, StateDB]:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(fork={self.fork})"


class StepLogBackend(ExecutionBackend):
    """Variant producing opcode step logs."""

    native = False

    @abstractmethod
    def trace(self, request: TraceRequest) -> StepTraceResult:
        ...

    def build_witness(self, request, result, st, circuits_params):
        return build_witness_from_steps(request, result, st, circuits_params)


class BlockTraceBackend(ExecutionBackend):
    """Variant producing a native block trace."""

    native = True

    @abstractmethod
    def trace(self, request: TraceRequest) -> BlockTrace:
        ...

    def build_witness(self, request, result, st, circuits_params):
        return build_witness_from_block_trace(result, circuits_params)


def check_balance_overflow(request: TraceRequest) -> None:
    """Skip tests whose pre-state holds a balance with a nonzero top byte."""
    for account in request.accounts.values():
        if account.balance >> 248:
            raise SkipTestBalanceOverflow()


def acquire_trace(
    backend: ExecutionBackend,
    request: TraceRequest,
    expect_exception: bool,
) -> Optional[TraceResult]:
    """
    Run the backend and classify its outcome.

    Returns:
        The trace result, or None when the expected exception occurred and
        the test is complete

    Raises:
        ExceptionMismatch: If the outcome disagrees with `expect_exception`
    """
    try:
        result = backend.trace(request)
    except TracerFault as e:
        if expect_exception:
            logger.debug("expected exception: %s", e)
            return None
        raise ExceptionMismatch(expected=False, found=str(e))

    if expect_exception:
        raise ExceptionMismatch(expected=True, found="no error")
    return result


def check_geth_traces(
    geth_traces: List[GethExecTrace],
    suite: TestSuite,
    verbose: bool = False,
    skip_self_destruct: bool = False,
) -> None:
    """Apply the supported-envelope guards to an accepted trace."""
    if not geth_traces:
        raise CannotGenerateCircuitInput("tracer returned no traces")

    if skip_self_destruct and any(
        step.op == "SELFDESTRUCT" for trace in geth_traces for step in trace.struct_logs
    ):
        raise SkipTestSelfDestruct()

    first = geth_traces[0]
    if len(first.struct_logs) > suite.max_steps:
        raise SkipTestMaxSteps(len(first.struct_logs))

    if suite.max_gas > 0 and first.gas > suite.max_gas:
        raise SkipTestMaxGasLimit(first.gas)

    if verbose:
        print_trace(first)


def print_trace(trace: GethExecTrace) -> None:
    """Log the steps of a trace as a table."""
    table = Table(title=f"gas used {trace.gas}, failed {trace.failed}")
    for column in ("PC", "OP", "GAS", "GAS_COST", "DEPTH", "ERR"):
        table.add_column(column, justify="right" if column != "OP" else "left")
    for step in trace.struct_logs:
        table.add_row(
            str(step.pc),
            step.op,
            str(step.gas),
            str(step.gas_cost),
            str(step.depth),
            step.error or "",
        )

    console = Console(file=io.StringIO(), width=120, color_system=None)
    console.print(table)
    logger.info("trace:\n%s", console.file.getvalue())
