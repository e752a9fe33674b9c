"""
statetool RLP Encoding Module

Canonical encodings of the legacy (EIP-155) transactions built from
fixtures, using the `rlp` serializer.
"""

from typing import Optional

import rlp
from rlp.sedes import Binary, big_endian_int, binary

# Empty for contract creation, 20 bytes otherwise
address_sedes = Binary.fixed_length(20, allow_empty=True)


class LegacyTransaction(rlp.Serializable):
    """
    RLP layout of a legacy transaction.

    For EIP-155 signing the same layout is used with (v, r, s) set to
    (chain_id, 0, 0).
    """
    fields = [
        ("nonce", big_endian_int),
        ("gas_price", big_endian_int),
        ("gas", big_endian_int),
        ("to", address_sedes),
        ("value", big_endian_int),
        ("data", binary),
        ("v", big_endian_int),
        ("r", big_endian_int),
        ("s", big_endian_int),
    ]


def encode_unsigned_transaction(
    nonce: int,
    gas_price: int,
    gas_limit: int,
    to: Optional[bytes],
    value: int,
    data: bytes,
    chain_id: int,
) -> bytes:
    """Encode a transaction for EIP-155 signing."""
    return rlp.encode(LegacyTransaction(
        nonce=nonce,
        gas_price=gas_price,
        gas=gas_limit,
        to=to or b'',
        value=value,
        data=data,
        v=chain_id,
        r=0,
        s=0,
    ))


def encode_signed_transaction(
    nonce: int,
    gas_price: int,
    gas_limit: int,
    to: Optional[bytes],
    value: int,
    data: bytes,
    v: int,
    r: int,
    s: int,
) -> bytes:
    """Encode a signed transaction as broadcast on the wire."""
    return rlp.encode(LegacyTransaction(
        nonce=nonce,
        gas_price=gas_price,
        gas=gas_limit,
        to=to or b'',
        value=value,
        data=data,
        v=v,
        r=r,
        s=s,
    ))


def decode_signed_transaction(encoded: bytes) -> LegacyTransaction:
    return rlp.decode(encoded, sedes=LegacyTransaction)
