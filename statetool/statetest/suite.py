"""
State test suite scheduling.

Runs a batch of state tests with per-test fault isolation. Super circuit
runs are strictly sequential; per-component runs are split round-robin into
PARALLELISM groups that run concurrently, each group sequentially.
"""

import concurrent.futures
from typing import List, Optional, Sequence, TypeVar

from ..logger import get_logger
from ..config import TestSuite
from ..constants import PARALLELISM
from ..exceptions import DuplicateResultError, ResultStoreError
from ..prover import FaultKind, Prover, fault_kind
from .errors import StateTestError
from .executor import CircuitsConfig, run_test
from .fixture import StateTest
from .results import ResultInfo, ResultLevel, Results
from .tracing import ExecutionBackend

logger = get_logger(__name__)

T = TypeVar("T")


def partition_round_robin(items: Sequence[T], groups: int = PARALLELISM) -> List[List[T]]:
    """Assign item i to group i % groups."""
    out: List[List[T]] = [[] for _ in range(groups)]
    for i, item in enumerate(items):
        out[i % groups].append(item)
    return out


def classify_fault(err: BaseException) -> ResultLevel:
    """Level of a runtime fault caught at the scheduling boundary."""
    kind = fault_kind(err)
    if kind is FaultKind.UNSATISFIED:
        return ResultLevel.Fail
    if kind is FaultKind.UNIMPLEMENTED:
        return ResultLevel.Ignored
    return ResultLevel.Panic


def classify_error(err: StateTestError) -> ResultLevel:
    return ResultLevel.Ignored if err.is_skip() else ResultLevel.Fail


def run_statetests_suite(
    tcs: List[StateTest],
    circuits_config: CircuitsConfig,
    suite: TestSuite,
    results: Results,
    backend: ExecutionBackend,
    prover: Optional[Prover] = None,
) -> None:
    """
    Run every test not already present in `results`, recording one outcome
    per test.
    """
    all_test_count = len(tcs)
    tcs = [tc for tc in tcs if not results.contains(tc.key)]

    logger.info(
        "%d test results cached, %d remaining",
        all_test_count - len(tcs),
        len(tcs),
    )

    test_count = len(tcs)

    def record(tc: StateTest, level: ResultLevel, details: str) -> None:
        try:
            results.insert(ResultInfo(tc.id, level, details, tc.path))
        except DuplicateResultError as e:
            logger.warning("%s, keeping the first outcome", e)
        except ResultStoreError as e:
            logger.error("%s", e)

    def run_state_test(tc: StateTest) -> None:
        if not suite.allowed(tc.id):
            record(tc, ResultLevel.Ignored, "Ignored in config file")
            return

        logger.debug("running test (done %d/%d) %s...", len(results), test_count, tc.key)

        try:
            run_test(tc, suite, circuits_config, backend, prover)
        except StateTestError as err:
            level, details = classify_error(err), str(err)
        except Exception as err:
            details = str(err) or type(err).__name__
            level = classify_fault(err)
            if level is ResultLevel.Panic:
                logger.debug("test %s panicked", tc.key, exc_info=True)
        else:
            level, details = ResultLevel.Success, ""

        record(tc, level, details)

    def run_group(group: List[StateTest]) -> None:
        for tc in group:
            run_state_test(tc)

    if circuits_config.super_circuit:
        run_group(tcs)
        return

    groups = [g for g in partition_round_robin(tcs, PARALLELISM) if g]
    with concurrent.futures.ThreadPoolExecutor(max_workers=PARALLELISM) as executor:
        futures = [executor.submit(run_group, g) for g in groups]
        for future in concurrent.futures.as_completed(futures):
            future.result()
