"""
statetool py-evm Backend Tests

Executes real transactions on the in-process Shanghai backend.

Run with: pytest tests/test_pyevm_backend.py -v
"""

import pytest

# PUSH1 1 PUSH1 1 ADD PUSH1 0 SSTORE STOP
ADD_CODE = bytes.fromhex("600160010160005500")


@pytest.fixture
def tracer():
    from statetool.backends import PyEvmTracer

    return PyEvmTracer(fork="Shanghai")


@pytest.fixture
def circuits_config():
    from statetool.statetest import CircuitsConfig

    return CircuitsConfig()


def _contract_test(make_state_test, addresses, post_slot_value=2):
    from statetool.statetest import Account, AccountMatch

    sender, target = addresses["sender"], addresses["recipient"]
    return make_state_test(
        id="add_d0_g0_v0",
        value=0,
        gas_limit=100000,
        pre={
            sender: Account(sender, balance=10**18),
            target: Account(target, code=ADD_CODE),
        },
        post={target: AccountMatch(target, storage={0: post_slot_value})},
    )


class TestPyEvmTracer:
    """Tests for tracing on py-evm."""

    def test_only_shanghai(self):
        from statetool.backends import PyEvmTracer

        with pytest.raises(ValueError, match="only supports Shanghai"):
            PyEvmTracer(fork="London")

    def test_value_transfer(self, make_state_test, tracer, addresses):
        from statetool.statetest import build_trace_request

        _, request, _ = build_trace_request(make_state_test())
        block_trace = tracer.trace(request)

        result = block_trace.execution_results[0]
        assert result.gas_used == 21000
        assert not result.failed
        assert result.struct_logs == []
        assert block_trace.post_accounts[addresses["sender"]].balance == 90
        assert block_trace.post_accounts[addresses["sender"]].nonce == 1
        assert block_trace.post_accounts[addresses["recipient"]].balance == 10
        assert block_trace.parent_hash == b'\x11' * 32
        assert len(block_trace.state_root) == 32

    def test_struct_logs(self, make_state_test, tracer, addresses):
        from statetool.statetest import build_trace_request

        _, request, _ = build_trace_request(_contract_test(make_state_test, addresses))
        block_trace = tracer.trace(request)

        result = block_trace.execution_results[0]
        assert [s.op for s in result.struct_logs] == ["PUSH1", "PUSH1", "ADD", "PUSH1", "SSTORE", "STOP"]
        assert [s.pc for s in result.struct_logs] == [0, 2, 4, 5, 7, 8]
        assert all(s.depth == 1 for s in result.struct_logs)
        assert result.struct_logs[0].gas_cost == 3
        assert result.gas_used == 21000 + 4 * 3 + 22100
        assert block_trace.post_accounts[addresses["recipient"]].storage == {0: 2}

    def test_selfdestruct_has_mnemonic(self):
        from statetool.backends.pyevm import TracingComputation

        assert TracingComputation.opcodes[0xff].mnemonic == "SELFDESTRUCT"
        assert all(isinstance(r.mnemonic, str) for r in TracingComputation.opcodes.values())

    def test_selfdestruct_step_recorded(self, make_state_test, tracer, addresses):
        from statetool.statetest import Account, build_trace_request

        sender, target = addresses["sender"], addresses["recipient"]
        st = make_state_test(
            value=0,
            gas_limit=100000,
            pre={
                sender: Account(sender, balance=10**18),
                # PUSH1 0 SELFDESTRUCT
                target: Account(target, balance=5, code=bytes.fromhex("6000ff")),
            },
            post={},
        )
        _, request, _ = build_trace_request(st)
        result = tracer.trace(request).execution_results[0]

        assert [s.op for s in result.struct_logs] == ["PUSH1", "SELFDESTRUCT"]
        assert not result.failed

    def test_codeless_call_has_no_steps(self, make_state_test, tracer, addresses):
        from statetool.statetest import Account, build_trace_request

        sender, target = addresses["sender"], addresses["recipient"]
        st = make_state_test(
            value=0,
            gas_limit=100000,
            pre={
                sender: Account(sender, balance=10**18),
                target: Account(target, balance=1),
            },
            post={},
        )
        _, request, _ = build_trace_request(st)
        result = tracer.trace(request).execution_results[0]

        assert result.struct_logs == []
        assert result.gas_used == 21000

    def test_insufficient_balance_is_fault(self, make_state_test, tracer):
        from statetool.exceptions import TracerFault
        from statetool.statetest import build_trace_request

        _, request, _ = build_trace_request(make_state_test(value=1000))
        with pytest.raises(TracerFault):
            tracer.trace(request)

    def test_bad_nonce_is_fault(self, make_state_test, tracer):
        from statetool.exceptions import TracerFault
        from statetool.statetest import build_trace_request

        _, request, _ = build_trace_request(make_state_test(nonce=5))
        with pytest.raises(TracerFault):
            tracer.trace(request)

    def test_gas_above_block_limit_is_fault(self, make_state_test, tracer):
        from statetool.exceptions import TracerFault
        from statetool.statetest import build_trace_request

        _, request, _ = build_trace_request(make_state_test(gas_limit=20_000_000))
        with pytest.raises(TracerFault, match="gas limit reached"):
            tracer.trace(request)


class TestPyEvmRunTest:
    """End-to-end run_test scenarios on py-evm."""

    def test_add_succeeds(self, make_state_test, suite, circuits_config, tracer, addresses):
        from statetool.statetest import run_test

        run_test(_contract_test(make_state_test, addresses), suite, circuits_config, tracer)

    def test_storage_mismatch(self, make_state_test, suite, circuits_config, tracer, addresses):
        from statetool.statetest import StorageMismatch, run_test

        with pytest.raises(StorageMismatch) as exc_info:
            run_test(_contract_test(make_state_test, addresses, 3), suite, circuits_config, tracer)
        assert str(exc_info.value) == "StorageMismatch(slot:0 expected:3, found: 2)"

    def test_transfer_balance_mismatch(self, make_state_test, suite, circuits_config, tracer, addresses):
        from statetool.statetest import AccountMatch, BalanceMismatch, run_test

        sender = addresses["sender"]
        st = make_state_test(post={sender: AccountMatch(sender, balance=80)})
        with pytest.raises(BalanceMismatch) as exc_info:
            run_test(st, suite, circuits_config, tracer)
        assert str(exc_info.value) == "BalanceMismatch(expected:80, found:90)"

    def test_expected_exception(self, make_state_test, suite, circuits_config, tracer):
        from statetool.statetest import run_test

        run_test(make_state_test(value=1000, exception=True), suite, circuits_config, tracer)

    def test_max_steps_guard(self, make_state_test, suite, circuits_config, tracer, addresses):
        from statetool.statetest import SkipTestMaxSteps, run_test

        suite.max_steps = 5
        with pytest.raises(SkipTestMaxSteps) as exc_info:
            run_test(_contract_test(make_state_test, addresses), suite, circuits_config, tracer)
        assert exc_info.value.steps == 6

    def test_native_super_circuit_params(self, make_state_test, suite, tracer, addresses):
        from unittest.mock import MagicMock

        from statetool.statetest import CircuitsConfig, run_test

        prover = MagicMock()
        run_test(
            _contract_test(make_state_test, addresses), suite,
            CircuitsConfig(super_circuit=True), tracer, prover,
        )
        witness, super_circuit = prover.prove.call_args[0]
        assert super_circuit is True
        assert witness.circuits_params.max_rws == 1_000_000
        assert witness.state_root is not None
