"""
statetool State Tests

Fixture model, trace request construction, trace acquisition, witness
construction, post-state verification and the parallel suite runner.
"""

from .errors import (
    StateTestError,
    BalanceMismatch,
    NonceMismatch,
    CodeMismatch,
    StorageMismatch,
    ExceptionMismatch,
    CannotGenerateCircuitInput,
    SkipTestMaxGasLimit,
    SkipTestMaxSteps,
    SkipTestSelfDestruct,
    SkipTestBalanceOverflow,
)
from .fixture import Env, Account, AccountMatch, StateTest
from .loader import Compiler, StateTestBuilder, load_statetests_suite
from .request import BlockConstants, Transaction, TraceRequest, build_trace_request
from .traces import StructLog, GethExecTrace, StepTraceResult, ExecutionResult, BlockTrace
from .witness import CircuitsParams, StateDB, Witness, circuits_params_for
from .tracing import (
    ExecutionBackend,
    StepLogBackend,
    BlockTraceBackend,
    acquire_trace,
    check_balance_overflow,
    check_geth_traces,
)
from .verifier import check_post
from .executor import CircuitsConfig, run_test
from .results import ResultLevel, ResultInfo, Results
from .suite import run_statetests_suite, partition_round_robin, classify_fault

__all__ = [
    "StateTestError",
    "BalanceMismatch",
    "NonceMismatch",
    "CodeMismatch",
    "StorageMismatch",
    "ExceptionMismatch",
    "CannotGenerateCircuitInput",
    "SkipTestMaxGasLimit",
    "SkipTestMaxSteps",
    "SkipTestSelfDestruct",
    "SkipTestBalanceOverflow",
    "Env",
    "Account",
    "AccountMatch",
    "StateTest",
    "Compiler",
    "StateTestBuilder",
    "load_statetests_suite",
    "BlockConstants",
    "Transaction",
    "TraceRequest",
    "build_trace_request",
    "StructLog",
    "GethExecTrace",
    "StepTraceResult",
    "ExecutionResult",
    "BlockTrace",
    "CircuitsParams",
    "StateDB",
    "Witness",
    "circuits_params_for",
    "ExecutionBackend",
    "StepLogBackend",
    "BlockTraceBackend",
    "acquire_trace",
    "check_balance_overflow",
    "check_geth_traces",
    "check_post",
    "CircuitsConfig",
    "run_test",
    "ResultLevel",
    "ResultInfo",
    "Results",
    "run_statetests_suite",
    "partition_round_robin",
    "classify_fault",
]
