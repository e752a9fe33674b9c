"""
Step-log backend driven by go-ethereum's `evm t8n` transition tool.

The trace request is streamed to the tool as JSON on stdin; results and the
post alloc are read from stdout and per-transaction step logs from the
`trace-<i>-<hash>.jsonl` files written to a temporary directory.
"""

import json
import os
import subprocess
import tempfile
from typing import Any, Dict, List

from eth_utils import decode_hex, encode_hex, to_canonical_address

from ..logger import get_logger
from ..constants import STATETOOL_GETH_BINARY, STATETOOL_FORK
from ..exceptions import TracerFault
from ..statetest.fixture import Account
from ..statetest.loader import fork_index, parse_number
from ..statetest.request import TraceRequest, Transaction
from ..statetest.tracing import StepLogBackend
from ..statetest.traces import GethExecTrace, StepTraceResult, StructLog, parse_return_value

logger = get_logger(__name__)

BLOCK_REWARD_DISABLED = -1


class GethTracer(StepLogBackend):
    """Runs `evm t8n --trace` once per trace request."""

    name = "geth"

    def __init__(
        self,
        binary: str = str(STATETOOL_GETH_BINARY),
        fork: str = str(STATETOOL_FORK),
        timeout: float = 600.0,
    ):
        super().__init__(fork)
        self.binary = binary
        self.timeout = timeout

    # --- input ------------------------------------------------------------

    def _alloc(self, request: TraceRequest) -> Dict[str, Any]:
        return {
            encode_hex(address): {
                "balance": hex(account.balance),
                "nonce": hex(account.nonce),
                "code": encode_hex(account.code),
                "storage": {hex(k): hex(v) for k, v in account.storage.items()},
            }
            for address, account in request.accounts.items()
        }

    def _env(self, request: TraceRequest) -> Dict[str, Any]:
        bc = request.block_constants
        env: Dict[str, Any] = {
            "currentCoinbase": encode_hex(bc.coinbase),
            "currentGasLimit": hex(bc.gas_limit),
            "currentNumber": hex(bc.number),
            "currentTimestamp": hex(bc.timestamp),
            "currentBaseFee": hex(bc.base_fee),
        }
        if bc.number > 0:
            env["blockHashes"] = {str(bc.number - 1): encode_hex(request.history_hashes[-1])}

        if self._at_least("Paris"):
            env["currentRandom"] = encode_hex(bc.difficulty.to_bytes(32, "big"))
        else:
            env["currentDifficulty"] = hex(bc.difficulty)
        if self._at_least("Shanghai"):
            env["withdrawals"] = []
        if self._at_least("Cancun"):
            env["parentBeaconBlockRoot"] = encode_hex(b'\x00' * 32)
        return env

    def _tx(self, tx: Transaction) -> Dict[str, Any]:
        return {
            "type": "0x0",
            "chainId": "0x1",
            "nonce": hex(tx.nonce),
            "gasPrice": hex(tx.gas_price),
            "gas": hex(tx.gas_limit),
            "to": encode_hex(tx.to) if tx.to else None,
            "value": hex(tx.value),
            "input": encode_hex(tx.call_data),
            "v": hex(tx.v),
            "r": hex(tx.r),
            "s": hex(tx.s),
            "hash": encode_hex(tx.hash),
        }

    def _at_least(self, fork: str) -> bool:
        return fork_index(self.fork) >= fork_index(fork)

    def construct_args(self, request: TraceRequest, basedir: str) -> List[str]:
        return [
            self.binary,
            "t8n",
            "--input.alloc=stdin",
            "--input.txs=stdin",
            "--input.env=stdin",
            "--output.result=stdout",
            "--output.alloc=stdout",
            "--output.body=stdout",
            f"--state.fork={self.fork}",
            f"--state.chainid={request.chain_id}",
            f"--state.reward={BLOCK_REWARD_DISABLED}",
            "--trace",
            *request.logger_config.t8n_flags(),
            f"--output.basedir={basedir}",
        ]

    # --- execution --------------------------------------------------------

    def trace(self, request: TraceRequest) -> StepTraceResult:
        stdin = {
            "alloc": self._alloc(request),
            "env": self._env(request),
            "txs": [self._tx(tx) for tx in request.transactions],
        }

        with tempfile.TemporaryDirectory() as temp_dir:
            args = self.construct_args(request, temp_dir)
            try:
                result = subprocess.run(
                    args,
                    input=json.dumps(stdin).encode(),
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=self.timeout,
                )
            except FileNotFoundError:
                raise RuntimeError(f"geth evm binary not found: {self.binary}")

            if result.returncode != 0:
                raise TracerFault("failed to evaluate: " + result.stderr.decode(errors="replace").strip())

            output = json.loads(result.stdout)
            rejected = output["result"].get("rejected") or []
            if rejected:
                raise TracerFault(rejected[0].get("error", "transaction rejected"))

            traces = []
            for i, receipt in enumerate(output["result"]["receipts"]):
                trace_file = os.path.join(temp_dir, f"trace-{i}-{receipt['transactionHash']}.jsonl")
                traces.append(self._parse_trace(trace_file, receipt))

        logger.debug("geth traced %d transactions", len(traces))
        return StepTraceResult(traces=traces, post_alloc=self._parse_alloc(output["alloc"]))

    @staticmethod
    def _parse_trace(trace_file: str, receipt: Dict[str, Any]) -> GethExecTrace:
        struct_logs = []
        return_value = b''
        failed = parse_number(receipt.get("status", "0x1")) == 0
        with open(trace_file, "r") as f:
            for line in f:
                if not line.strip():
                    continue
                entry = json.loads(line)
                if "pc" in entry:
                    struct_logs.append(StructLog.from_dict(entry))
                elif "output" in entry:
                    return_value = parse_return_value(entry["output"])
                    failed = failed or bool(entry.get("error"))
        return GethExecTrace(
            gas=parse_number(receipt["gasUsed"]),
            failed=failed,
            return_value=return_value,
            struct_logs=struct_logs,
        )

    @staticmethod
    def _parse_alloc(alloc: Dict[str, Any]) -> Dict[bytes, Account]:
        accounts = {}
        for addr, acc in alloc.items():
            address = to_canonical_address(addr)
            accounts[address] = Account(
                address=address,
                balance=parse_number(acc.get("balance", "0x0")),
                nonce=parse_number(acc.get("nonce", "0x0")),
                code=decode_hex(acc.get("code", "0x")),
                storage={
                    parse_number(k): parse_number(v) for k, v in (acc.get("storage") or {}).items()
                },
            )
        return accounts
