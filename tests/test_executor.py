"""
statetool Single Test Execution Tests

End-to-end scenarios through run_test with an in-memory transfer backend.

Run with: pytest tests/test_executor.py -v
"""

from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture
def circuits_config():
    from statetool.statetest import CircuitsConfig

    return CircuitsConfig()


class TestRunTest:
    """Tests for run_test outcomes."""

    def test_simple_transfer_succeeds(self, make_state_test, suite, circuits_config, transfer_backend):
        from statetool.statetest import run_test

        assert run_test(make_state_test(), suite, circuits_config, transfer_backend) is None
        assert transfer_backend.calls == 1

    def test_balance_mismatch(self, make_state_test, suite, circuits_config, transfer_backend, addresses):
        from statetool.statetest import AccountMatch, BalanceMismatch, run_test

        sender = addresses["sender"]
        st = make_state_test(post={sender: AccountMatch(sender, balance=80)})
        with pytest.raises(BalanceMismatch) as exc_info:
            run_test(st, suite, circuits_config, transfer_backend)
        assert str(exc_info.value) == "BalanceMismatch(expected:80, found:90)"

    def test_balance_overflow_skipped_before_trace(self, make_state_test, suite, circuits_config, transfer_backend):
        from statetool.statetest import SkipTestBalanceOverflow, run_test

        with pytest.raises(SkipTestBalanceOverflow):
            run_test(make_state_test(pre_balance=2**248), suite, circuits_config, transfer_backend)
        assert transfer_backend.calls == 0

    def test_expected_exception_occurred(self, make_state_test, suite, circuits_config, transfer_backend):
        from statetool.statetest import run_test

        st = make_state_test(value=1000, exception=True)
        with patch("statetool.statetest.executor.check_post") as check_post:
            assert run_test(st, suite, circuits_config, transfer_backend) is None
        check_post.assert_not_called()

    def test_expected_exception_missing(self, make_state_test, suite, circuits_config, transfer_backend):
        from statetool.statetest import ExceptionMismatch, run_test

        st = make_state_test(exception=True)
        with pytest.raises(ExceptionMismatch) as exc_info:
            run_test(st, suite, circuits_config, transfer_backend)
        assert str(exc_info.value) == 'Exception(expected:true, found:"no error")'

    def test_unexpected_fault(self, make_state_test, suite, circuits_config, transfer_backend):
        from statetool.statetest import ExceptionMismatch, run_test

        with pytest.raises(ExceptionMismatch) as exc_info:
            run_test(make_state_test(nonce=3), suite, circuits_config, transfer_backend)
        assert "nonce too high" in exc_info.value.found

    def test_max_steps_skip(self, make_state_test, suite, circuits_config, backend_factory):
        from statetool.statetest import SkipTestMaxSteps, run_test

        suite.max_steps = 2
        with pytest.raises(SkipTestMaxSteps):
            run_test(make_state_test(), suite, circuits_config, backend_factory(steps=3))

    def test_prover_receives_witness(self, make_state_test, suite, transfer_backend):
        from statetool.statetest import CircuitsConfig, Witness, run_test

        prover = MagicMock()
        run_test(make_state_test(), suite, CircuitsConfig(super_circuit=False), transfer_backend, prover)
        prover.prove.assert_called_once()
        witness, super_circuit = prover.prove.call_args[0]
        assert isinstance(witness, Witness)
        assert super_circuit is False
        assert witness.circuits_params.max_txs == 1

    def test_prover_fault_propagates(self, make_state_test, suite, circuits_config, transfer_backend):
        from statetool.prover import FaultKind, ProverFault
        from statetool.statetest import run_test

        prover = MagicMock()
        prover.prove.side_effect = ProverFault("constraint failed", FaultKind.UNSATISFIED)
        with pytest.raises(ProverFault):
            run_test(make_state_test(), suite, circuits_config, transfer_backend, prover)

    def test_prover_runs_before_post_check(self, make_state_test, suite, circuits_config, transfer_backend, addresses):
        from statetool.prover import ProverFault
        from statetool.statetest import AccountMatch, run_test

        sender = addresses["sender"]
        st = make_state_test(post={sender: AccountMatch(sender, balance=1)})
        prover = MagicMock()
        prover.prove.side_effect = ProverFault("evm_unimplemented: BLOBHASH")
        with pytest.raises(ProverFault):
            run_test(st, suite, circuits_config, transfer_backend, prover)
