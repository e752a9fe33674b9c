"""
Trace request construction.

Turns a `StateTest` into the backend-neutral `TraceRequest` submitted to a
tracer, together with the expected post-state.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from eth_utils import encode_hex, to_checksum_address

from ..constants import CHAIN_ID, STATETOOL_FORK
from ..crypto import PrivateKey, sign_transaction
from .fixture import Account, AccountMatch, StateTest


@dataclass(frozen=True)
class BlockConstants:
    coinbase: bytes
    timestamp: int
    number: int
    difficulty: int
    gas_limit: int
    base_fee: int


@dataclass(frozen=True)
class LoggerConfig:
    """Which parts of the machine state the tracer records per step."""
    enable_memory: bool = False
    disable_stack: bool = False
    enable_return_data: bool = True

    def t8n_flags(self) -> List[str]:
        """`evm t8n` options selecting these fields."""
        flags = []
        if self.enable_memory:
            flags.append("--trace.memory")
        if self.disable_stack:
            flags.append("--trace.nostack")
        if self.enable_return_data:
            flags.append("--trace.returndata")
        return flags


@dataclass(frozen=True)
class Transaction:
    """A signed EIP-155 legacy transaction."""
    sender: bytes
    to: Optional[bytes]
    nonce: int
    value: int
    gas_limit: int
    gas_price: int
    call_data: bytes
    v: int
    r: int
    s: int
    rlp_bytes: bytes
    rlp_unsigned_bytes: bytes
    hash: bytes
    tx_type: str = "Eip155"

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.tx_type,
            "from": to_checksum_address(self.sender),
            "to": to_checksum_address(self.to) if self.to else None,
            "nonce": hex(self.nonce),
            "value": hex(self.value),
            "gas": hex(self.gas_limit),
            "gasPrice": hex(self.gas_price),
            "input": encode_hex(self.call_data),
            "v": hex(self.v),
            "r": hex(self.r),
            "s": hex(self.s),
            "hash": encode_hex(self.hash),
        }


@dataclass(frozen=True)
class TraceRequest:
    """
    Everything a tracer needs to execute one fixture transaction.

    `accounts` is a read-only view of the fixture's pre-state.
    """
    chain_id: int
    history_hashes: Tuple[bytes, ...]
    block_constants: BlockConstants
    transactions: Tuple[Transaction, ...]
    accounts: Mapping[bytes, Account]
    fork: str = str(STATETOOL_FORK)
    logger_config: LoggerConfig = field(default_factory=LoggerConfig)

    @property
    def transaction(self) -> Transaction:
        return self.transactions[0]


def build_trace_request(
    st: StateTest,
    fork: str = str(STATETOOL_FORK),
) -> Tuple[str, TraceRequest, Dict[bytes, AccountMatch]]:
    """
    Build the trace request for a state test.

    The transaction is signed with the fixture's secret key over its EIP-155
    encoding for chain id 1; the fixture never supplies a signature.

    Returns:
        (test id, trace request, expected post-state)

    Raises:
        InvalidKeyError: If the fixture's secret key is malformed
    """
    key = PrivateKey(st.secret_key)
    signed = sign_transaction(
        key,
        nonce=st.nonce,
        gas_price=st.gas_price,
        gas_limit=st.gas_limit,
        to=st.to,
        value=st.value,
        data=st.data,
        chain_id=CHAIN_ID,
    )

    tx = Transaction(
        sender=st.sender,
        to=st.to,
        nonce=st.nonce,
        value=st.value,
        gas_limit=st.gas_limit,
        gas_price=st.gas_price,
        call_data=st.data,
        v=signed.v,
        r=signed.r,
        s=signed.s,
        rlp_bytes=signed.rlp_signed,
        rlp_unsigned_bytes=signed.rlp_unsigned,
        hash=signed.hash,
    )

    request = TraceRequest(
        chain_id=CHAIN_ID,
        history_hashes=(st.env.previous_hash,),
        block_constants=BlockConstants(
            coinbase=st.env.current_coinbase,
            timestamp=st.env.current_timestamp,
            number=st.env.current_number,
            difficulty=st.env.current_difficulty,
            gas_limit=st.env.current_gas_limit,
            base_fee=st.env.current_base_fee,
        ),
        transactions=(tx,),
        accounts=MappingProxyType(dict(st.pre)),
        fork=fork,
    )

    return st.id, request, st.result
