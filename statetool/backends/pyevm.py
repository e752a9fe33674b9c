"""
Block-trace backend running the transaction in-process on py-evm (Shanghai).

A tracing computation records one struct log per executed opcode and a
tracing state records every account and storage slot written, so the
post-state of all touched accounts can be read back after execution.
"""

from typing import Any, Dict, List, Set

from eth.constants import BLANK_ROOT_HASH, CREATE_CONTRACT_ADDRESS
from eth.db.atomic import AtomicDB
from eth.exceptions import Halt, VMError
from eth.vm.execution_context import ExecutionContext
from eth.vm import opcode_values
from eth.vm.forks.shanghai import ShanghaiVM
from eth.vm.forks.shanghai.computation import ShanghaiComputation
from eth.vm.forks.shanghai.state import ShanghaiState
from eth_keys.exceptions import BadSignature
from eth_utils import ValidationError

from ..logger import get_logger
from ..constants import STATETOOL_FORK
from ..exceptions import TracerFault
from ..statetest.fixture import Account
from ..statetest.request import TraceRequest
from ..statetest.tracing import BlockTraceBackend
from ..statetest.traces import BlockTrace, ExecutionResult, StructLog

logger = get_logger(__name__)


def _opcode_names() -> Dict[int, str]:
    names = {}
    for name, value in vars(opcode_values).items():
        if name.isupper() and isinstance(value, int):
            names.setdefault(value, name)
    return names


OPCODE_NAMES = _opcode_names()


class _StepRecorder:
    """Wraps an opcode and appends a struct log entry for every execution."""

    def __init__(self, value: int, opcode_fn):
        self.opcode_fn = opcode_fn
        # Deprecated opcodes (SELFDESTRUCT) are plain wrapper functions
        self.mnemonic = getattr(opcode_fn, "mnemonic", None) or OPCODE_NAMES.get(value, f"0x{value:02x}")
        self.gas_cost = getattr(opcode_fn, "gas_cost", 0)

    def __call__(self, computation) -> None:
        # Calls into accounts without code run an implicit STOP that is not a step
        if len(computation.code) == 0:
            self.opcode_fn(computation=computation)
            return

        gas_before = computation.get_gas_remaining()
        step = {
            "pc": computation.code.program_counter - 1,
            "op": self.mnemonic,
            "gas": gas_before,
            "gasCost": 0,
            "depth": computation.msg.depth + 1,
        }
        computation.state.struct_logs.append(step)
        try:
            self.opcode_fn(computation=computation)
        except Halt:
            raise
        except VMError as e:
            step["error"] = str(e) or type(e).__name__
            raise
        finally:
            step["gasCost"] = max(0, gas_before - computation.get_gas_remaining())


class TracingComputation(ShanghaiComputation):
    opcodes = {
        value: _StepRecorder(value, opcode_fn)
        for value, opcode_fn in ShanghaiComputation.opcodes.items()
    }


class TracingState(ShanghaiState):
    computation_class = TracingComputation

    def __init__(self, db, execution_context, state_root):
        super().__init__(db, execution_context, state_root)
        self.struct_logs: List[Dict[str, Any]] = []
        self.touched: Set[bytes] = set()
        self.touched_slots: Dict[bytes, Set[int]] = {}

    def reset_tracking(self) -> None:
        self.struct_logs = []
        self.touched = set()
        self.touched_slots = {}

    def set_balance(self, address, balance):
        self.touched.add(address)
        super().set_balance(address, balance)

    def set_nonce(self, address, nonce):
        self.touched.add(address)
        super().set_nonce(address, nonce)

    def increment_nonce(self, address):
        self.touched.add(address)
        super().increment_nonce(address)

    def set_code(self, address, code):
        self.touched.add(address)
        super().set_code(address, code)

    def set_storage(self, address, slot, value):
        self.touched.add(address)
        self.touched_slots.setdefault(address, set()).add(slot)
        super().set_storage(address, slot, value)

    def delete_account(self, address):
        self.touched.add(address)
        super().delete_account(address)

    def touch_account(self, address):
        self.touched.add(address)
        super().touch_account(address)


class PyEvmTracer(BlockTraceBackend):
    """Executes trace requests on an in-memory py-evm Shanghai state."""

    name = "pyevm"

    def __init__(self, fork: str = str(STATETOOL_FORK)):
        if fork != "Shanghai":
            raise ValueError(f"pyevm backend only supports Shanghai, got {fork}")
        super().__init__(fork)

    def _execution_context(self, request: TraceRequest) -> ExecutionContext:
        bc = request.block_constants
        return ExecutionContext(
            coinbase=bc.coinbase,
            timestamp=bc.timestamp,
            block_number=bc.number,
            difficulty=bc.difficulty,
            mix_hash=bc.difficulty.to_bytes(32, "big"),
            gas_limit=bc.gas_limit,
            prev_hashes=list(reversed(request.history_hashes)),
            chain_id=request.chain_id,
            base_fee_per_gas=bc.base_fee,
        )

    def _build_state(self, request: TraceRequest) -> TracingState:
        state = TracingState(AtomicDB(), self._execution_context(request), BLANK_ROOT_HASH)
        for address, account in request.accounts.items():
            state.set_balance(address, account.balance)
            state.set_nonce(address, account.nonce)
            state.set_code(address, account.code)
            for slot, value in account.storage.items():
                state.set_storage(address, slot, value)
        state.persist()
        state.reset_tracking()
        return state

    def trace(self, request: TraceRequest) -> BlockTrace:
        state = self._build_state(request)
        builder = ShanghaiVM.get_transaction_builder()
        bc = request.block_constants

        results = []
        for tx in request.transactions:
            if tx.gas_limit > bc.gas_limit:
                raise TracerFault(
                    f"gas limit reached: tx gas {tx.gas_limit} exceeds block gas limit {bc.gas_limit}"
                )

            evm_tx = builder.new_transaction(
                nonce=tx.nonce,
                gas_price=tx.gas_price,
                gas=tx.gas_limit,
                to=tx.to or CREATE_CONTRACT_ADDRESS,
                value=tx.value,
                data=tx.call_data,
                v=tx.v,
                r=tx.r,
                s=tx.s,
            )

            state.struct_logs = []
            try:
                evm_tx.validate()
                computation = state.apply_transaction(evm_tx)
            except (ValidationError, BadSignature) as e:
                raise TracerFault(str(e))

            refund = min(computation.get_gas_refund(), (tx.gas_limit - computation.get_gas_remaining()) // 5)
            gas_used = tx.gas_limit - computation.get_gas_remaining() - refund
            results.append(ExecutionResult(
                gas_used=gas_used,
                failed=computation.is_error,
                return_value=bytes(computation.output),
                struct_logs=[StructLog.from_dict(step) for step in state.struct_logs],
                refund=refund,
                error=str(computation.error) if computation.is_error else None,
            ))

        state.persist()
        post_accounts = self._post_accounts(state, request)
        logger.debug("py-evm traced %d transactions, %d accounts in post-state",
                     len(results), len(post_accounts))

        return BlockTrace(
            chain_id=request.chain_id,
            block_constants=bc,
            parent_hash=request.history_hashes[-1],
            transactions=list(request.transactions),
            execution_results=results,
            post_accounts=post_accounts,
            state_root=state.state_root,
        )

    @staticmethod
    def _post_accounts(state: TracingState, request: TraceRequest) -> Dict[bytes, Account]:
        addresses = set(request.accounts) | state.touched
        addresses.update(tx.sender for tx in request.transactions)
        addresses.add(request.block_constants.coinbase)

        post = {}
        for address in sorted(addresses):
            if not state.account_exists(address):
                continue
            pre = request.accounts.get(address)
            slots = set(pre.storage) if pre else set()
            slots |= state.touched_slots.get(address, set())
            storage = {}
            for slot in sorted(slots):
                value = state.get_storage(address, slot)
                if value:
                    storage[slot] = value
            post[address] = Account(
                address=address,
                balance=state.get_balance(address),
                nonce=state.get_nonce(address),
                code=state.get_code(address),
                storage=storage,
            )
        return post
