"""
Execution trace types produced by tracer backends.

`GethExecTrace` is the step-log shape shared by both backends. The native
`BlockTrace` of the in-process backend carries the post-state alongside its
execution results and projects to step logs for the envelope guards.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from eth_utils import decode_hex, encode_hex

from .fixture import Account
from .request import BlockConstants, Transaction


@dataclass(frozen=True)
class StructLog:
    """One executed opcode."""
    pc: int
    op: str
    gas: int
    gas_cost: int
    depth: int
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StructLog":
        return cls(
            pc=int(data["pc"]),
            op=str(data.get("opName") or data["op"]),
            gas=_as_int(data["gas"]),
            gas_cost=_as_int(data["gasCost"]),
            depth=int(data["depth"]),
            error=data.get("error") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "pc": self.pc,
            "op": self.op,
            "gas": self.gas,
            "gasCost": self.gas_cost,
            "depth": self.depth,
        }
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class GethExecTrace:
    """Step log of one transaction."""
    gas: int
    failed: bool
    return_value: bytes = b''
    struct_logs: List[StructLog] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gas": self.gas,
            "failed": self.failed,
            "returnValue": encode_hex(self.return_value),
            "structLogs": [log.to_dict() for log in self.struct_logs],
        }


@dataclass
class StepTraceResult:
    """Result of the step-log backend: per-transaction traces plus the post alloc."""
    traces: List[GethExecTrace]
    post_alloc: Dict[bytes, Account] = field(default_factory=dict)

    def geth_traces(self) -> List[GethExecTrace]:
        return self.traces


@dataclass
class ExecutionResult:
    """Native per-transaction result of the block-trace backend."""
    gas_used: int
    failed: bool
    return_value: bytes
    struct_logs: List[StructLog]
    refund: int = 0
    error: Optional[str] = None

    def to_geth_trace(self) -> GethExecTrace:
        return GethExecTrace(
            gas=self.gas_used,
            failed=self.failed,
            return_value=self.return_value,
            struct_logs=list(self.struct_logs),
        )


@dataclass
class BlockTrace:
    """
    Native block trace: header context, the executed transactions, their
    execution results and the post-state of every touched account.
    """
    chain_id: int
    block_constants: BlockConstants
    parent_hash: bytes
    transactions: List[Transaction]
    execution_results: List[ExecutionResult]
    post_accounts: Dict[bytes, Account]
    state_root: Optional[bytes] = None

    def geth_traces(self) -> List[GethExecTrace]:
        return [result.to_geth_trace() for result in self.execution_results]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainID": self.chain_id,
            "parentHash": encode_hex(self.parent_hash),
            "stateRoot": encode_hex(self.state_root) if self.state_root else None,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "executionResults": [r.to_geth_trace().to_dict() for r in self.execution_results],
        }


def _as_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    s = str(value)
    return int(s, 16) if s.startswith("0x") else int(s)


def parse_return_value(value: Optional[str]) -> bytes:
    return decode_hex(value) if value else b''
