"""
Shared fixtures for the statetool test suite.
"""

from typing import Dict, Optional

import pytest
from eth_utils import to_canonical_address

from statetool.config import TestSuite
from statetool.exceptions import TracerFault
from statetool.statetest.fixture import Account, AccountMatch, Env, StateTest
from statetool.statetest.request import TraceRequest
from statetool.statetest.traces import GethExecTrace, StepTraceResult, StructLog
from statetool.statetest.tracing import StepLogBackend

# Well-known ethereum/tests sender key
SECRET_KEY = bytes.fromhex("45a915e4d060149eb4365960e6a7a45f334393093061116b197e3240065ff2d8")
SENDER = to_canonical_address("0xa94f5374fce5edbc8e2a8697c15331677e6ebf0b")
RECIPIENT = to_canonical_address("0x095e7baea6a6c7c4c2dfeb977efac326af552d87")
COINBASE = to_canonical_address("0x2adc25665018aa1fe0e6bc666dac8fc2697ff9ba")


def _make_state_test(
    id: str = "add",
    path: str = "p.yml",
    pre_balance: int = 100,
    value: int = 10,
    nonce: int = 0,
    gas_limit: int = 21000,
    gas_price: int = 0,
    post: Optional[Dict[bytes, AccountMatch]] = None,
    exception: bool = False,
    pre: Optional[Dict[bytes, Account]] = None,
    data: bytes = b'',
) -> StateTest:
    if pre is None:
        pre = {SENDER: Account(SENDER, balance=pre_balance)}
    if post is None and not exception:
        post = {
            SENDER: AccountMatch(SENDER, balance=pre_balance - value),
            RECIPIENT: AccountMatch(RECIPIENT, balance=value),
        }
    return StateTest(
        path=path,
        id=id,
        env=Env(
            current_coinbase=COINBASE,
            current_difficulty=0x20000,
            current_gas_limit=10_000_000,
            current_number=1,
            current_timestamp=1000,
            current_base_fee=0,
            previous_hash=b'\x11' * 32,
        ),
        secret_key=SECRET_KEY,
        sender=SENDER,
        to=RECIPIENT,
        gas_limit=gas_limit,
        gas_price=gas_price,
        nonce=nonce,
        value=value,
        data=data,
        pre=pre,
        result=post or {},
        exception=exception,
    )


class TransferBackend(StepLogBackend):
    """
    Step-log backend that only moves value between accounts.

    Faults when the sender cannot pay or the nonce does not match, like a
    real tracer rejecting the transaction.
    """

    def __init__(self, steps: int = 0, gas: int = 21000, raise_error: Optional[Exception] = None):
        super().__init__("Shanghai")
        self.steps = steps
        self.gas = gas
        self.raise_error = raise_error
        self.calls = 0

    def trace(self, request: TraceRequest) -> StepTraceResult:
        self.calls += 1
        if self.raise_error is not None:
            raise self.raise_error

        tx = request.transaction
        accounts = {
            addr: Account(addr, acc.balance, acc.nonce, acc.code, dict(acc.storage))
            for addr, acc in request.accounts.items()
        }
        sender = accounts.get(tx.sender) or Account(tx.sender)
        if sender.nonce != tx.nonce:
            raise TracerFault(f"nonce too high: address {tx.sender.hex()}, tx: {tx.nonce} state: {sender.nonce}")
        if sender.balance < tx.value:
            raise TracerFault("insufficient funds for gas * price + value")

        recipient = accounts.get(tx.to) or Account(tx.to)
        sender.balance -= tx.value
        sender.nonce += 1
        recipient.balance += tx.value
        accounts[tx.sender] = sender
        accounts[tx.to] = recipient

        struct_logs = [StructLog(pc=i, op="JUMPDEST", gas=100 - i, gas_cost=1, depth=1) for i in range(self.steps)]
        return StepTraceResult(
            traces=[GethExecTrace(gas=self.gas, failed=False, struct_logs=struct_logs)],
            post_alloc=accounts,
        )


@pytest.fixture
def make_state_test():
    """Factory for state tests around a simple A -> B value transfer."""
    return _make_state_test


@pytest.fixture
def transfer_backend():
    return TransferBackend()


@pytest.fixture
def suite():
    return TestSuite(id="test", paths=[], max_steps=1000, max_gas=0)


@pytest.fixture
def addresses():
    return {"sender": SENDER, "recipient": RECIPIENT, "coinbase": COINBASE}


@pytest.fixture
def backend_factory():
    return TransferBackend
