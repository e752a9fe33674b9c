"""
secp256k1 keys for fixture transactions.

Fixtures carry the sender's raw secret key. The sender address, the
transaction signature and the sender recovered from that signature all go
through the thin eth-keys wrappers below.
"""

from typing import Tuple, Union

from eth_keys import keys as eth_keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import decode_hex

from ..exceptions import InvalidKeyError

SECRET_KEY_SIZE = 32


def _recovery_id(v: int) -> int:
    # 0/1 pass through, 27/28 are pre-EIP-155, 35+ carry the chain id
    if v >= 35:
        return (v - 35) & 1
    if v >= 27:
        return v - 27
    return v


class Signature:
    """Recoverable ECDSA signature; `v` is always the 0/1 recovery id."""

    __slots__ = ("_inner",)

    def __init__(self, inner: eth_keys.Signature):
        self._inner = inner

    @classmethod
    def from_vrs(cls, v: int, r: int, s: int) -> "Signature":
        """Build from components, accepting 0/1, 27/28 and EIP-155 `v` values."""
        return cls(eth_keys.Signature(vrs=(_recovery_id(v), r, s)))

    @property
    def v(self) -> int:
        return self._inner.v

    @property
    def r(self) -> int:
        return self._inner.r

    @property
    def s(self) -> int:
        return self._inner.s

    @property
    def vrs(self) -> Tuple[int, int, int]:
        return self._inner.vrs

    def __repr__(self) -> str:
        return f"Signature(v={self.v}, r={self.r:#x})"


class PublicKey:
    __slots__ = ("_inner",)

    def __init__(self, key: Union[eth_keys.PublicKey, bytes]):
        if isinstance(key, bytes) and len(key) == 65 and key[0] == 0x04:
            key = key[1:]
        if isinstance(key, bytes) and len(key) == 64:
            key = eth_keys.PublicKey(key)
        if not isinstance(key, eth_keys.PublicKey):
            raise InvalidKeyError(f"Invalid public key: {key!r}")
        self._inner = key

    @classmethod
    def recover_from_msg_hash(cls, msg_hash: bytes, signature: Signature) -> "PublicKey":
        """Recover the signer of `msg_hash`; InvalidKeyError when impossible."""
        try:
            return cls(signature._inner.recover_public_key_from_msg_hash(msg_hash))
        except BadSignature as e:
            raise InvalidKeyError(f"Cannot recover public key: {e}") from e

    @property
    def address(self) -> bytes:
        return self._inner.to_canonical_address()

    def to_bytes(self) -> bytes:
        return self._inner.to_bytes()

    def __eq__(self, other) -> bool:
        return isinstance(other, PublicKey) and self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash(self.to_bytes())


class PrivateKey:
    """
    A fixture's secret key.

    Raises:
        InvalidKeyError: the key is not 32 bytes or is outside the curve order
    """

    __slots__ = ("_inner",)

    def __init__(self, key_bytes: bytes):
        if len(key_bytes) != SECRET_KEY_SIZE:
            raise InvalidKeyError(
                f"Private key must be {SECRET_KEY_SIZE} bytes, got {len(key_bytes)}"
            )
        try:
            self._inner = eth_keys.PrivateKey(key_bytes)
        except (ValidationError, ValueError) as e:
            raise InvalidKeyError(f"Invalid private key: {e}") from e

    @classmethod
    def from_hex(cls, hex_str: str) -> "PrivateKey":
        try:
            raw = decode_hex(hex_str)
        except ValueError as e:
            raise InvalidKeyError(f"Invalid private key hex: {e}") from e
        return cls(raw)

    @property
    def public_key(self) -> PublicKey:
        return PublicKey(self._inner.public_key)

    @property
    def address(self) -> bytes:
        """Canonical 20-byte sender address."""
        return self._inner.public_key.to_canonical_address()

    def to_bytes(self) -> bytes:
        return self._inner.to_bytes()

    def to_hex(self, with_prefix: bool = True) -> str:
        return ("0x" if with_prefix else "") + self.to_bytes().hex()

    def sign_msg_hash(self, msg_hash: bytes) -> Signature:
        if len(msg_hash) != 32:
            raise ValueError(f"Message hash must be 32 bytes, got {len(msg_hash)}")
        return Signature(self._inner.sign_msg_hash(msg_hash))

    def __eq__(self, other) -> bool:
        return isinstance(other, PrivateKey) and self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash(self.to_bytes())

    def __repr__(self) -> str:
        return f"PrivateKey({self.to_hex()[:10]}...)"
