"""
Post-state verification.
"""

from typing import Mapping

from eth_utils import to_checksum_address

from ..logger import get_logger
from ..constants import ZERO_HASH
from .errors import BalanceMismatch, CodeMismatch, NonceMismatch, StorageMismatch
from .fixture import AccountMatch
from .witness import StateDB

logger = get_logger(__name__)


def check_post(sdb: StateDB, post: Mapping[bytes, AccountMatch]) -> None:
    """
    Compare the resulting state against the expected post-state.

    Only the fields an expectation sets are compared, in the order balance,
    nonce, code, then storage slots as declared. The first mismatch is
    raised.
    """
    for address, expected in post.items():
        _, actual = sdb.get_account(address)

        if expected.balance is not None and expected.balance != actual.balance:
            logger.error("balance mismatch at %s, expected %s actual %s",
                         to_checksum_address(address), expected.balance, actual.balance)
            raise BalanceMismatch(expected=expected.balance, found=actual.balance)

        if expected.nonce is not None and expected.nonce != actual.nonce:
            logger.error("nonce mismatch at %s, expected %s actual %s",
                         to_checksum_address(address), expected.nonce, actual.nonce)
            raise NonceMismatch(expected=expected.nonce, found=actual.nonce)

        if expected.code is not None:
            if actual.code_hash == ZERO_HASH:
                actual_code = b''
            else:
                actual_code = sdb.get_code(actual.code_hash)
            if actual_code != expected.code:
                raise CodeMismatch(expected=expected.code, found=actual_code)

        for slot, expected_value in expected.storage.items():
            actual_value = actual.storage.get(slot, 0)
            if expected_value != actual_value:
                logger.error("storage mismatch at %s slot %s, expected %s actual %s",
                             to_checksum_address(address), slot, expected_value, actual_value)
                raise StorageMismatch(slot=slot, expected=expected_value, found=actual_value)
