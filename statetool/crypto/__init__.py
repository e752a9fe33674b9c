"""
statetool Crypto Module

secp256k1 keys, EIP-155 transaction signing and RLP transaction encoding
used to turn fixture transaction fields into signed transactions.
"""

from .keys import PrivateKey, PublicKey, Signature
from .signing import SignedTransaction, sign_transaction, recover_sender, eip155_v
from .encoding import (
    LegacyTransaction,
    encode_unsigned_transaction,
    encode_signed_transaction,
    decode_signed_transaction,
)

__all__ = [
    "PrivateKey",
    "PublicKey",
    "Signature",
    "SignedTransaction",
    "sign_transaction",
    "recover_sender",
    "eip155_v",
    "LegacyTransaction",
    "encode_unsigned_transaction",
    "encode_signed_transaction",
    "decode_signed_transaction",
]
