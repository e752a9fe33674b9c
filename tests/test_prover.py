"""
statetool Prover Tests

Run with: pytest tests/test_prover.py -v
"""

import sys

import pytest


class FakeWitness:
    def to_dict(self):
        return {"chainId": 1}


class TestFaultClassification:
    """Tests for mapping faults to kinds."""

    def test_text_kinds(self):
        from statetool.prover import FaultKind, classify_fault_text

        assert classify_fault_text("error: circuit was not satisfied at row 7") is FaultKind.UNSATISFIED
        assert classify_fault_text("evm_unimplemented: CREATE2") is FaultKind.UNIMPLEMENTED
        assert classify_fault_text("index out of bounds") is None

    def test_structured_kind(self):
        from statetool.prover import FaultKind, ProverFault, fault_kind

        assert fault_kind(ProverFault("x", FaultKind.UNIMPLEMENTED)) is FaultKind.UNIMPLEMENTED
        assert fault_kind(ProverFault("circuit was not satisfied")) is FaultKind.UNSATISFIED
        assert fault_kind(ValueError("boom")) is None


class TestCommandProver:
    """Tests for the external prover command."""

    def test_make_prover(self):
        from statetool.prover import CommandProver, make_prover

        assert make_prover([]) is None
        assert isinstance(make_prover(["prover"]), CommandProver)

    def test_empty_command_rejected(self):
        from statetool.prover import CommandProver

        with pytest.raises(ValueError):
            CommandProver([])

    def test_passing_prover(self):
        from statetool.prover import CommandProver

        script = "import json, sys; assert json.load(sys.stdin)['chainId'] == 1"
        CommandProver([sys.executable, "-c", script]).prove(FakeWitness(), super_circuit=False)

    def test_super_circuit_arguments(self):
        from statetool.prover import CommandProver, ProverFault

        script = "import sys; sys.stdin.read(); sys.exit(0 if sys.argv[1:] == ['--super-circuit', '--degree', '20'] else 1)"
        prover = CommandProver([sys.executable, "-c", script])
        prover.prove(FakeWitness(), super_circuit=True)
        with pytest.raises(ProverFault):
            prover.prove(FakeWitness(), super_circuit=False)

    def test_failing_prover_classified(self):
        from statetool.prover import CommandProver, FaultKind, ProverFault

        script = "import sys; sys.stdin.read(); sys.stderr.write('circuit was not satisfied'); sys.exit(2)"
        with pytest.raises(ProverFault) as exc_info:
            CommandProver([sys.executable, "-c", script]).prove(FakeWitness(), super_circuit=False)
        assert exc_info.value.kind is FaultKind.UNSATISFIED

    def test_missing_command(self):
        from statetool.prover import CommandProver, ProverFault

        with pytest.raises(ProverFault, match="not found"):
            CommandProver(["/nonexistent/statetool-prover"]).prove(FakeWitness(), super_circuit=False)
