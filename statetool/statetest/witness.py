"""
Witness construction.

Converts an accepted trace plus its block and account context into a
`Witness` and the `StateDB` holding the resulting account state. There are
two entry points, one per backend variant:

- `build_witness_from_steps`: step logs, a block header reconstructed from
  the trace request and a wallet-derived transaction list.
- `build_witness_from_block_trace`: a backend-native `BlockTrace`.

Both yield the same output types. Any failure is reported as
`CannotGenerateCircuitInput`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from eth_utils import encode_hex, keccak, to_checksum_address

from ..logger import get_logger
from ..constants import (
    MAX_BYTECODE,
    MAX_CALLDATA,
    MAX_EXP_STEPS,
    MAX_INNER_BLOCKS,
    MAX_KECCAK_ROWS,
    MAX_MPT_ROWS,
    MAX_POSEIDON_ROWS,
    MAX_PRECOMPILE_EC_ADD,
    MAX_PRECOMPILE_EC_MUL,
    MAX_PRECOMPILE_EC_PAIRING,
    MAX_RWS,
    MAX_TXS,
    MAX_VERTICAL_ROWS,
    ZERO_HASH,
)
from ..crypto import PrivateKey, recover_sender
from ..exceptions import InvalidKeyError
from .errors import CannotGenerateCircuitInput
from .fixture import Account, StateTest
from .request import BlockConstants, Transaction, TraceRequest
from .traces import BlockTrace, GethExecTrace, StepTraceResult

logger = get_logger(__name__)

EMPTY_CODE_HASH = keccak(b'')


# ---------------------------------------------------------------------------
# Circuit parameters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PrecompileEcParams:
    ec_add: int = MAX_PRECOMPILE_EC_ADD
    ec_mul: int = MAX_PRECOMPILE_EC_MUL
    ec_pairing: int = MAX_PRECOMPILE_EC_PAIRING


@dataclass(frozen=True)
class CircuitsParams:
    """Capacity limits of the circuits a witness is built for. 0 means dynamic."""
    max_txs: int
    max_calldata: int
    max_rws: int
    max_copy_rows: int
    max_mpt_rows: int
    max_exp_steps: int
    max_bytecode: int
    max_evm_rows: int
    max_keccak_rows: int
    max_poseidon_rows: int
    max_vertical_circuit_rows: int
    max_inner_blocks: int
    max_rlp_rows: int
    max_ec_ops: PrecompileEcParams = field(default_factory=PrecompileEcParams)

    @classmethod
    def for_sub_circuits(cls) -> "CircuitsParams":
        return cls(
            max_txs=1,
            max_calldata=0,
            max_rws=0,
            max_copy_rows=0,
            max_mpt_rows=5000,
            max_exp_steps=5000,
            max_bytecode=5000,
            max_evm_rows=0,
            max_keccak_rows=0,
            max_poseidon_rows=0,
            max_vertical_circuit_rows=0,
            max_inner_blocks=64,
            max_rlp_rows=6000,
        )

    @classmethod
    def for_super_circuit(cls) -> "CircuitsParams":
        return cls(
            max_txs=MAX_TXS,
            max_calldata=MAX_CALLDATA,
            max_rws=256,
            max_copy_rows=256,
            max_mpt_rows=256,
            max_exp_steps=256,
            max_bytecode=512,
            max_evm_rows=0,
            max_keccak_rows=0,
            max_poseidon_rows=0,
            max_vertical_circuit_rows=0,
            max_inner_blocks=64,
            max_rlp_rows=512,
        )

    @classmethod
    def for_native_super_circuit(cls) -> "CircuitsParams":
        return cls(
            max_txs=MAX_TXS,
            max_calldata=MAX_CALLDATA,
            max_rws=MAX_RWS,
            max_copy_rows=MAX_RWS,
            max_mpt_rows=MAX_MPT_ROWS,
            max_exp_steps=MAX_EXP_STEPS,
            max_bytecode=MAX_BYTECODE,
            max_evm_rows=MAX_RWS,
            max_keccak_rows=MAX_KECCAK_ROWS,
            max_poseidon_rows=MAX_POSEIDON_ROWS,
            max_vertical_circuit_rows=MAX_VERTICAL_ROWS,
            max_inner_blocks=MAX_INNER_BLOCKS,
            max_rlp_rows=MAX_CALLDATA,
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {k: v for k, v in self.__dict__.items() if k != "max_ec_ops"}
        out["max_ec_ops"] = dict(self.max_ec_ops.__dict__)
        return out


def circuits_params_for(super_circuit: bool, native: bool) -> CircuitsParams:
    """Select the parameter profile for a run."""
    if not super_circuit:
        return CircuitsParams.for_sub_circuits()
    if native:
        return CircuitsParams.for_native_super_circuit()
    return CircuitsParams.for_super_circuit()


# ---------------------------------------------------------------------------
# State database
# ---------------------------------------------------------------------------

@dataclass
class AccountState:
    nonce: int = 0
    balance: int = 0
    code_hash: bytes = ZERO_HASH
    storage: Dict[int, int] = field(default_factory=dict)


class StateDB:
    """Post-execution account state and the code it references, by hash."""

    def __init__(self):
        self.accounts: Dict[bytes, AccountState] = {}
        self.code_db: Dict[bytes, bytes] = {EMPTY_CODE_HASH: b''}

    @classmethod
    def from_accounts(cls, accounts: Iterable[Account]) -> "StateDB":
        sdb = cls()
        for account in accounts:
            sdb.set_account(account)
        return sdb

    def set_account(self, account: Account) -> None:
        code_hash = account.code_hash
        self.code_db[code_hash] = account.code
        self.accounts[account.address] = AccountState(
            nonce=account.nonce,
            balance=account.balance,
            code_hash=code_hash,
            storage=dict(account.storage),
        )

    def get_account(self, address: bytes) -> Tuple[bool, AccountState]:
        """Look up an account. Missing accounts read as empty."""
        account = self.accounts.get(address)
        if account is None:
            return False, AccountState()
        return True, account

    def get_code(self, code_hash: bytes) -> bytes:
        if code_hash == ZERO_HASH:
            return b''
        return self.code_db[code_hash]

    def __contains__(self, address: bytes) -> bool:
        return address in self.accounts

    def __len__(self) -> int:
        return len(self.accounts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            to_checksum_address(addr): {
                "nonce": acc.nonce,
                "balance": hex(acc.balance),
                "codeHash": encode_hex(acc.code_hash),
                "storage": {hex(k): hex(v) for k, v in acc.storage.items()},
            }
            for addr, acc in self.accounts.items()
        }


# ---------------------------------------------------------------------------
# Witness
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BlockTransaction:
    """A transaction as included in the reconstructed block."""
    transaction: Transaction
    transaction_index: int
    block_number: int
    chain_id: int


@dataclass
class EthBlock:
    author: bytes
    timestamp: int
    number: int
    difficulty: int
    gas_limit: int
    base_fee_per_gas: int
    parent_hash: bytes
    transactions: List[BlockTransaction] = field(default_factory=list)

    @classmethod
    def from_constants(
        cls,
        constants: BlockConstants,
        parent_hash: bytes,
        transactions: Iterable[Transaction],
        chain_id: int,
    ) -> "EthBlock":
        return cls(
            author=constants.coinbase,
            timestamp=constants.timestamp,
            number=constants.number,
            difficulty=constants.difficulty,
            gas_limit=constants.gas_limit,
            base_fee_per_gas=constants.base_fee,
            parent_hash=parent_hash,
            transactions=[
                BlockTransaction(tx, index, constants.number, chain_id)
                for index, tx in enumerate(transactions)
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "author": to_checksum_address(self.author),
            "timestamp": self.timestamp,
            "number": self.number,
            "difficulty": hex(self.difficulty),
            "gasLimit": self.gas_limit,
            "baseFeePerGas": self.base_fee_per_gas,
            "parentHash": encode_hex(self.parent_hash),
            "transactions": [
                dict(
                    btx.transaction.to_dict(),
                    transactionIndex=btx.transaction_index,
                    blockNumber=btx.block_number,
                    chainId=btx.chain_id,
                )
                for btx in self.transactions
            ],
        }


@dataclass
class Witness:
    """Finalized witness of one block, ready for the proving step."""
    chain_id: int
    history_hashes: Tuple[bytes, ...]
    block: EthBlock
    traces: List[GethExecTrace]
    circuits_params: CircuitsParams
    sdb: StateDB
    state_root: Optional[bytes] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "historyHashes": [encode_hex(h) for h in self.history_hashes],
            "block": self.block.to_dict(),
            "traces": [t.to_dict() for t in self.traces],
            "circuitsParams": self.circuits_params.to_dict(),
            "state": self.sdb.to_dict(),
            "codes": {encode_hex(h): encode_hex(c) for h, c in self.sdb.code_db.items() if c},
            "stateRoot": encode_hex(self.state_root) if self.state_root else None,
        }


def check_circuits_params(
    params: CircuitsParams,
    transactions: List[Transaction],
    traces: List[GethExecTrace],
    sdb: StateDB,
) -> None:
    """Reject witnesses that exceed a fixed (non-zero) circuit capacity."""
    if params.max_txs and len(transactions) > params.max_txs:
        raise CannotGenerateCircuitInput(
            f"{len(transactions)} transactions exceed max_txs {params.max_txs}"
        )

    calldata = sum(len(tx.call_data) for tx in transactions)
    if params.max_calldata and calldata > params.max_calldata:
        raise CannotGenerateCircuitInput(
            f"{calldata} calldata bytes exceed max_calldata {params.max_calldata}"
        )

    bytecode = sum(len(code) + 1 for code in sdb.code_db.values() if code)
    if params.max_bytecode and bytecode > params.max_bytecode:
        raise CannotGenerateCircuitInput(
            f"{bytecode} bytecode rows exceed max_bytecode {params.max_bytecode}"
        )

    exp_steps = sum(1 for t in traces for step in t.struct_logs if step.op == "EXP")
    if params.max_exp_steps and exp_steps > params.max_exp_steps:
        raise CannotGenerateCircuitInput(
            f"{exp_steps} EXP steps exceed max_exp_steps {params.max_exp_steps}"
        )


def build_witness_from_steps(
    request: TraceRequest,
    result: StepTraceResult,
    st: StateTest,
    circuits_params: CircuitsParams,
) -> Tuple[Witness, StateDB]:
    """Build a witness from step logs and the trace request context."""
    try:
        wallet = PrivateKey(st.secret_key)
    except InvalidKeyError as e:
        raise CannotGenerateCircuitInput(str(e))
    wallets = {wallet.address: wallet}

    for tx in request.transactions:
        if tx.sender not in wallets:
            raise CannotGenerateCircuitInput(
                f"no wallet for sender {to_checksum_address(tx.sender)}"
            )
        try:
            signer = recover_sender(tx.rlp_unsigned_bytes, tx.v, tx.r, tx.s)
        except InvalidKeyError as e:
            raise CannotGenerateCircuitInput(str(e))
        if signer != tx.sender:
            raise CannotGenerateCircuitInput(
                f"signature of {encode_hex(tx.hash)} does not recover to its sender"
            )

    if len(result.traces) != len(request.transactions):
        raise CannotGenerateCircuitInput(
            f"{len(result.traces)} traces for {len(request.transactions)} transactions"
        )
    if not result.post_alloc:
        raise CannotGenerateCircuitInput("tracer returned no post-state")

    eth_block = EthBlock.from_constants(
        request.block_constants,
        st.env.previous_hash,
        request.transactions,
        request.chain_id,
    )
    sdb = StateDB.from_accounts(result.post_alloc.values())
    check_circuits_params(circuits_params, list(request.transactions), result.traces, sdb)

    witness = Witness(
        chain_id=request.chain_id,
        history_hashes=request.history_hashes,
        block=eth_block,
        traces=list(result.traces),
        circuits_params=circuits_params,
        sdb=sdb,
    )
    logger.debug("built witness for block %d from %d step traces", eth_block.number, len(result.traces))
    return witness, sdb


def build_witness_from_block_trace(
    block_trace: BlockTrace,
    circuits_params: CircuitsParams,
) -> Tuple[Witness, StateDB]:
    """Build a witness directly from a backend-native block trace."""
    if len(block_trace.execution_results) != len(block_trace.transactions):
        raise CannotGenerateCircuitInput(
            f"{len(block_trace.execution_results)} execution results for "
            f"{len(block_trace.transactions)} transactions"
        )

    eth_block = EthBlock.from_constants(
        block_trace.block_constants,
        block_trace.parent_hash,
        block_trace.transactions,
        block_trace.chain_id,
    )
    traces = block_trace.geth_traces()
    sdb = StateDB.from_accounts(block_trace.post_accounts.values())
    check_circuits_params(circuits_params, block_trace.transactions, traces, sdb)

    witness = Witness(
        chain_id=block_trace.chain_id,
        history_hashes=(block_trace.parent_hash,),
        block=eth_block,
        traces=traces,
        circuits_params=circuits_params,
        sdb=sdb,
        state_root=block_trace.state_root,
    )
    logger.debug("built witness for block %d from native block trace", eth_block.number)
    return witness, sdb
