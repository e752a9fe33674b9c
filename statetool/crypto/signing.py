"""
statetool Crypto Signing Module

EIP-155 transaction signing and signer recovery using secp256k1.
"""

from dataclasses import dataclass
from typing import Optional

from eth_utils import keccak

from .encoding import encode_signed_transaction, encode_unsigned_transaction
from .keys import PrivateKey, PublicKey, Signature


@dataclass(frozen=True)
class SignedTransaction:
    """A signed legacy transaction with both of its canonical encodings."""
    v: int
    r: int
    s: int
    rlp_unsigned: bytes
    rlp_signed: bytes

    @property
    def hash(self) -> bytes:
        """Transaction hash: keccak256 of the signed encoding."""
        return keccak(self.rlp_signed)


def eip155_v(recovery_id: int, chain_id: int) -> int:
    """EIP-155: v = chain_id * 2 + 35 + recovery_id."""
    return chain_id * 2 + 35 + recovery_id


def sign_transaction(
    private_key: PrivateKey,
    *,
    nonce: int,
    gas_price: int,
    gas_limit: int,
    to: Optional[bytes],
    value: int,
    data: bytes,
    chain_id: int,
) -> SignedTransaction:
    """
    Sign a legacy transaction with EIP-155 replay protection.

    Args:
        private_key: Sender's key
        nonce: Sender nonce
        gas_price: Gas price in wei
        gas_limit: Gas limit
        to: Recipient, or None for contract creation
        value: Value in wei
        data: Call data or init code
        chain_id: Chain id folded into v

    Returns:
        SignedTransaction carrying v, r, s and both encodings
    """
    rlp_unsigned = encode_unsigned_transaction(
        nonce, gas_price, gas_limit, to, value, data, chain_id,
    )
    signature = private_key.sign_msg_hash(keccak(rlp_unsigned))
    v = eip155_v(signature.v, chain_id)
    rlp_signed = encode_signed_transaction(
        nonce, gas_price, gas_limit, to, value, data, v, signature.r, signature.s,
    )
    return SignedTransaction(
        v=v,
        r=signature.r,
        s=signature.s,
        rlp_unsigned=rlp_unsigned,
        rlp_signed=rlp_signed,
    )


def recover_sender(rlp_unsigned: bytes, v: int, r: int, s: int) -> bytes:
    """
    Recover the 20-byte signer address of a legacy transaction.

    Args:
        rlp_unsigned: The encoding that was signed
        v, r, s: Signature components (EIP-155 v accepted)
    """
    signature = Signature.from_vrs(v, r, s)
    return PublicKey.recover_from_msg_hash(keccak(rlp_unsigned), signature).address
