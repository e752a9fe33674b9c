"""
statetool Suite Scheduling Tests

Tests for partitioning, fault isolation, outcome classification and result
caching in the suite runner.

Run with: pytest tests/test_suite.py -v
"""

import threading

import pytest


@pytest.fixture
def circuits_config():
    from statetool.statetest import CircuitsConfig

    return CircuitsConfig()


def _levels(results):
    return {info.test_id: (info.level.value, info.details) for info in results.entries()}


# ============================================================================
# Partitioning Tests
# ============================================================================

class TestPartition:
    """Tests for round-robin grouping."""

    def test_total_and_disjoint(self):
        from statetool.statetest import partition_round_robin

        items = list(range(45))
        groups = partition_round_robin(items, 20)
        assert len(groups) == 20
        flat = [i for g in groups for i in g]
        assert sorted(flat) == items
        assert len(set(flat)) == len(flat)

    def test_assignment_by_index(self):
        from statetool.statetest import partition_round_robin

        groups = partition_round_robin(["a", "b", "c", "d", "e"], 2)
        assert groups == [["a", "c", "e"], ["b", "d"]]

    def test_fewer_items_than_groups(self):
        from statetool.statetest import partition_round_robin

        groups = partition_round_robin([1], 20)
        assert [g for g in groups if g] == [[1]]


# ============================================================================
# Classification Tests
# ============================================================================

class TestClassifyFault:
    """Tests for runtime fault classification."""

    def test_unsatisfied_text_is_fail(self):
        from statetool.statetest import ResultLevel, classify_fault

        assert classify_fault(RuntimeError("the circuit was not satisfied")) is ResultLevel.Fail

    def test_unimplemented_text_is_ignored(self):
        from statetool.statetest import ResultLevel, classify_fault

        assert classify_fault(RuntimeError("evm_unimplemented: CREATE2")) is ResultLevel.Ignored

    def test_other_text_is_panic(self):
        from statetool.statetest import ResultLevel, classify_fault

        assert classify_fault(KeyError("slot")) is ResultLevel.Panic

    def test_structured_kind_wins(self):
        from statetool.prover import FaultKind, ProverFault
        from statetool.statetest import ResultLevel, classify_fault

        err = ProverFault("evm_unimplemented", FaultKind.UNSATISFIED)
        assert classify_fault(err) is ResultLevel.Fail


# ============================================================================
# Runner Tests
# ============================================================================

class TestRunSuite:
    """Tests for run_statetests_suite."""

    def test_outcomes_recorded(self, make_state_test, suite, circuits_config, transfer_backend, addresses):
        from statetool.statetest import AccountMatch, Results, run_statetests_suite

        sender = addresses["sender"]
        tcs = [
            make_state_test(id="ok"),
            make_state_test(id="bad", post={sender: AccountMatch(sender, balance=80)}),
            make_state_test(id="big", pre_balance=2**248),
        ]
        results = Results()
        run_statetests_suite(tcs, circuits_config, suite, results, transfer_backend)

        levels = _levels(results)
        assert levels["ok"] == ("Success", "")
        assert levels["bad"] == ("Fail", "BalanceMismatch(expected:80, found:90)")
        assert levels["big"] == ("Ignored", "SkipTestBalanceOverflow")

    def test_many_tests_one_outcome_each(self, make_state_test, suite, circuits_config, transfer_backend):
        from statetool.statetest import Results, run_statetests_suite

        tcs = [make_state_test(id=f"t{i}") for i in range(45)]
        results = Results()
        run_statetests_suite(tcs, circuits_config, suite, results, transfer_backend)
        assert len(results) == 45
        assert all(info.level.value == "Success" for info in results.entries())

    def test_fault_isolation(self, make_state_test, suite, circuits_config, backend_factory):
        from statetool.statetest import Results, run_statetests_suite

        class FlakyBackend(backend_factory):
            def trace(self, request):
                if request.transaction.value == 7:
                    raise RuntimeError("tracer crashed")
                return super().trace(request)

        tcs = [make_state_test(id="crash", value=7)] + [make_state_test(id=f"t{i}") for i in range(5)]
        results = Results()
        run_statetests_suite(tcs, circuits_config, suite, results, FlakyBackend())

        levels = _levels(results)
        assert levels["crash"] == ("Panic", "tracer crashed")
        assert all(levels[f"t{i}"][0] == "Success" for i in range(5))

    def test_prover_fault_text_classified(self, make_state_test, suite, circuits_config, transfer_backend):
        from statetool.prover import Prover, ProverFault
        from statetool.statetest import Results, run_statetests_suite

        class TextProver(Prover):
            def prove(self, witness, super_circuit):
                value = witness.block.transactions[0].transaction.value
                if value == 1:
                    raise ProverFault("circuit was not satisfied")
                if value == 2:
                    raise ProverFault("evm_unimplemented: SELFDESTRUCT")

        tcs = [make_state_test(id="unsat", value=1), make_state_test(id="unimpl", value=2)]
        results = Results()
        run_statetests_suite(tcs, circuits_config, suite, results, transfer_backend, TextProver())

        levels = _levels(results)
        assert levels["unsat"][0] == "Fail"
        assert levels["unimpl"][0] == "Ignored"

    def test_not_allowed_recorded_ignored(self, make_state_test, suite, circuits_config, transfer_backend):
        from statetool.statetest import Results, run_statetests_suite

        suite.ignore_tests = ["skipme"]
        results = Results()
        run_statetests_suite([make_state_test(id="skipme")], circuits_config, suite, results, transfer_backend)

        assert _levels(results)["skipme"] == ("Ignored", "Ignored in config file")
        assert transfer_backend.calls == 0

    def test_cached_results_not_rerun(self, make_state_test, suite, circuits_config, transfer_backend, tmp_path):
        from statetool.statetest import ResultInfo, ResultLevel, Results, run_statetests_suite

        cache = tmp_path / "results.cache"
        cache.write_text(ResultInfo("T1", ResultLevel.Fail, "old", "p.yml").to_cache_line() + "\n")
        results = Results.with_cache(cache)

        run_statetests_suite(
            [make_state_test(id="T1", path="p.yml"), make_state_test(id="T2", path="p.yml")],
            circuits_config, suite, results, transfer_backend,
        )

        assert transfer_backend.calls == 1
        assert results.get("T1#p.yml").details == "old"
        assert results.get("T2#p.yml").level is ResultLevel.Success
        assert len(cache.read_text().splitlines()) == 2

    def test_cached_count_logged(self, make_state_test, suite, circuits_config, transfer_backend, caplog):
        import logging

        from statetool.statetest import ResultInfo, ResultLevel, Results, run_statetests_suite

        results = Results()
        results.insert(ResultInfo("T1", ResultLevel.Success, "", "p.yml"))
        with caplog.at_level(logging.INFO, logger="statetool.statetest.suite"):
            run_statetests_suite(
                [make_state_test(id="T1"), make_state_test(id="T2")],
                circuits_config, suite, results, transfer_backend,
            )
        assert "1 test results cached, 1 remaining" in caplog.text

    def test_super_circuit_runs_sequentially(self, make_state_test, suite, backend_factory):
        from statetool.statetest import CircuitsConfig, Results, run_statetests_suite

        threads = set()

        class RecordingBackend(backend_factory):
            def trace(self, request):
                threads.add(threading.get_ident())
                return super().trace(request)

        tcs = [make_state_test(id=f"t{i}") for i in range(10)]
        results = Results()
        run_statetests_suite(tcs, CircuitsConfig(super_circuit=True), suite, results, RecordingBackend())

        assert threads == {threading.get_ident()}
        assert [i.test_id for i in results.entries()] == [f"t{i}" for i in range(10)]

    def test_invalid_key_is_panic(self, make_state_test, suite, circuits_config, transfer_backend):
        from dataclasses import replace

        from statetool.statetest import Results, run_statetests_suite

        st = replace(make_state_test(id="badkey"), secret_key=b'\x00' * 32)
        results = Results()
        run_statetests_suite([st], circuits_config, suite, results, transfer_backend)
        assert _levels(results)["badkey"][0] == "Panic"

    def test_unwritable_cache_does_not_stop_batch(self, make_state_test, suite, backend_factory, tmp_path, caplog):
        from statetool.statetest import CircuitsConfig, Results, run_statetests_suite

        backend = backend_factory()
        tcs = [make_state_test(id=f"t{i}") for i in range(3)]
        results = Results(cache_path=tmp_path)
        run_statetests_suite(tcs, CircuitsConfig(super_circuit=True), suite, results, backend)

        assert backend.calls == 3
        assert [i.test_id for i in results.entries()] == ["t0", "t1", "t2"]
        assert "cannot append" in caplog.text

    def test_unwritable_cache_in_worker_groups(self, make_state_test, suite, circuits_config, transfer_backend, tmp_path):
        from statetool.statetest import Results, run_statetests_suite

        tcs = [make_state_test(id=f"t{i}") for i in range(25)]
        results = Results(cache_path=tmp_path)
        run_statetests_suite(tcs, circuits_config, suite, results, transfer_backend)
        assert len(results) == 25
