"""
Single state test execution.
"""

from dataclasses import dataclass
from typing import Optional

from ..logger import get_logger
from ..config import TestSuite
from ..prover import Prover
from .fixture import StateTest
from .request import build_trace_request
from .tracing import ExecutionBackend, acquire_trace, check_balance_overflow, check_geth_traces
from .verifier import check_post
from .witness import circuits_params_for

logger = get_logger(__name__)


@dataclass(frozen=True)
class CircuitsConfig:
    super_circuit: bool = False
    verbose: bool = False
    skip_self_destruct: bool = False


def run_test(
    st: StateTest,
    suite: TestSuite,
    circuits_config: CircuitsConfig,
    backend: ExecutionBackend,
    prover: Optional[Prover] = None,
) -> None:
    """
    Run one state test end to end.

    Returns normally on success, including when an expected exception
    occurred.

    Raises:
        StateTestError: On a skip or a typed failure
        InvalidKeyError: If the fixture's secret key is malformed
    """
    _, request, post = build_trace_request(st, fork=backend.fork)

    check_balance_overflow(request)

    circuits_params = circuits_params_for(circuits_config.super_circuit, backend.native)

    result = acquire_trace(backend, request, st.exception)
    if result is None:
        return

    check_geth_traces(
        result.geth_traces(),
        suite,
        verbose=circuits_config.verbose,
        skip_self_destruct=circuits_config.skip_self_destruct,
    )

    witness, sdb = backend.build_witness(request, result, st, circuits_params)

    if prover is not None:
        prover.prove(witness, circuits_config.super_circuit)
    else:
        logger.debug("no prover configured, skipping proving for %s", st.key)

    check_post(sdb, post)
