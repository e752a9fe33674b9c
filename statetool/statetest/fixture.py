"""
In-memory representation of state test fixtures.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from eth_typing import Address, Hash32
from eth_utils import keccak, to_checksum_address

from ..constants import RESULT_KEY_SEPARATOR, ZERO_HASH
from ..exceptions import FixtureError


@dataclass(frozen=True)
class Env:
    """Block environment a fixture transaction executes in."""
    current_coinbase: Address
    current_difficulty: int
    current_gas_limit: int
    current_number: int
    current_timestamp: int
    current_base_fee: int = 10
    previous_hash: Hash32 = ZERO_HASH


@dataclass
class Account:
    """Full account as found in a fixture pre-state."""
    address: Address
    balance: int = 0
    nonce: int = 0
    code: bytes = b''
    storage: Dict[int, int] = field(default_factory=dict)

    @property
    def code_hash(self) -> bytes:
        return keccak(self.code)

    def __repr__(self) -> str:
        return (
            f"Account({to_checksum_address(self.address)}, balance={self.balance}, "
            f"nonce={self.nonce}, code={len(self.code)} bytes, storage={len(self.storage)} slots)"
        )


@dataclass
class AccountMatch:
    """
    Partial expectation on a post-state account.

    Unset fields are not checked. Storage slots are checked in declaration
    order.
    """
    address: Address
    balance: Optional[int] = None
    nonce: Optional[int] = None
    code: Optional[bytes] = None
    storage: Dict[int, int] = field(default_factory=dict)


@dataclass
class StateTest:
    """
    One state test: a pre-state, a single transaction and either an
    expected post-state or an expected exception.
    """
    path: str
    id: str
    env: Env
    secret_key: bytes
    sender: Address
    to: Optional[Address]
    gas_limit: int
    gas_price: int
    nonce: int
    value: int
    data: bytes
    pre: Dict[Address, Account] = field(default_factory=dict)
    result: Dict[Address, AccountMatch] = field(default_factory=dict)
    exception: bool = False

    def __post_init__(self):
        if self.exception and self.result:
            raise FixtureError(
                f"{self.id}: a test expecting an exception cannot also constrain the post-state"
            )

    @property
    def key(self) -> str:
        """Result store key, "{id}#{path}"."""
        return f"{self.id}{RESULT_KEY_SEPARATOR}{self.path}"

    def __str__(self) -> str:
        return self.key
