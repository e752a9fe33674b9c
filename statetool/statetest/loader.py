"""
State test filler loading.

Parses ethereum/tests style `*Filler.json` / `*Filler.yml` files into
`StateTest` objects, one per (data, gas, value) index combination covered by
an `expect` entry for the configured fork.
"""

import glob
import itertools
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml
from eth_utils import decode_hex, to_canonical_address

from ..logger import get_logger
from ..config import Config, TestSuite
from ..constants import STATETOOL_FORK, ZERO_HASH
from ..crypto import PrivateKey
from ..exceptions import FixtureError, InvalidKeyError
from .fixture import Account, AccountMatch, Env, StateTest

logger = get_logger(__name__)

FILLER_EXTENSIONS = (".json", ".yml")

FORK_ORDER = [
    "Frontier",
    "Homestead",
    "EIP150",
    "EIP158",
    "Byzantium",
    "Constantinople",
    "ConstantinopleFix",
    "Istanbul",
    "Berlin",
    "London",
    "Paris",
    "Shanghai",
    "Cancun",
    "Prague",
]

FORK_SYNONYMS = {"Merge": "Paris"}

_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")
_FORK_CONSTRAINT_RE = re.compile(r"^\s*(>=|<=|>|<)?\s*(\w+)\s*$")


class NoIntResolver(yaml.SafeLoader):
    """YAML loader that keeps unquoted numbers as strings."""
    pass


# Unquoted 000001000 would otherwise load as an octal int
for ch in list(NoIntResolver.yaml_implicit_resolvers):
    resolvers = NoIntResolver.yaml_implicit_resolvers[ch]
    NoIntResolver.yaml_implicit_resolvers[ch] = [
        (tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:int"
    ]


class Compiler:
    """
    Turns fixture code fields into bytecode.

    Only `0x` hex and `:raw 0x` code is handled here. Other source languages
    (LLL, Yul, Solidity, `:abi`) need a subclass that overrides
    `compile_source`.
    """

    def compile(self, code: Any) -> bytes:
        if isinstance(code, int):
            return code.to_bytes(max(1, (code.bit_length() + 7) // 8), "big")
        if not isinstance(code, str):
            raise FixtureError(f"code is not a string: {code!r}")

        src = code.strip()
        if not src:
            return b''
        if src.startswith(":raw"):
            return _decode_bytes(src[len(":raw"):].strip())
        if src.startswith("0x"):
            return _decode_bytes(src)
        return self.compile_source(src)

    def compile_source(self, src: str) -> bytes:
        raise FixtureError(f"no compiler available for code: {src[:60]!r}")


# ---------------------------------------------------------------------------
# Scalar parsing
# ---------------------------------------------------------------------------

def parse_number(value: Any) -> int:
    """Parse a fixture number given as int, `0x` hex or decimal string."""
    if isinstance(value, bool):
        raise FixtureError(f"invalid number: {value!r}")
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise FixtureError(f"invalid number: {value!r}")

    s = value.strip().replace("_", "")
    if s in ("", "0x"):
        return 0
    if s.startswith("0x:bigint "):
        s = s[len("0x:bigint "):]
    try:
        if s.startswith("0x") or any(c in "abcdef" for c in s.lower()):
            return int(s, 16)
        return int(s, 10)
    except ValueError:
        raise FixtureError(f"invalid number: {value!r}")


def parse_address(value: Any) -> bytes:
    """
    Parse an address. Tagged forms such as `<contract:0x...>` resolve to
    the literal address they carry.
    """
    if not isinstance(value, str):
        raise FixtureError(f"invalid address: {value!r}")
    matches = _ADDRESS_RE.findall(value)
    if matches:
        return to_canonical_address(matches[-1])
    s = value.strip()
    if len(s) == 40:
        try:
            return to_canonical_address("0x" + s)
        except ValueError:
            pass
    raise FixtureError(f"invalid address: {value!r}")


def parse_hash(value: Any) -> bytes:
    if not value:
        return ZERO_HASH
    return parse_number(value).to_bytes(32, "big")


def _decode_bytes(hex_str: str) -> bytes:
    try:
        return decode_hex(hex_str.replace(" ", ""))
    except ValueError:
        raise FixtureError(f"invalid hex data: {hex_str[:60]!r}")


def parse_storage(value: Optional[Dict[Any, Any]]) -> Dict[int, int]:
    return {parse_number(k): parse_number(v) for k, v in (value or {}).items()}


# ---------------------------------------------------------------------------
# Fork matching
# ---------------------------------------------------------------------------

def fork_index(name: str) -> int:
    name = FORK_SYNONYMS.get(name, name)
    try:
        return FORK_ORDER.index(name)
    except ValueError:
        raise FixtureError(f"unknown fork: {name}")


def fork_matches(constraint: str, fork: str) -> bool:
    """Check `fork` against a network constraint such as `>=Berlin`."""
    m = _FORK_CONSTRAINT_RE.match(constraint)
    if not m:
        raise FixtureError(f"invalid network constraint: {constraint!r}")
    op, name = m.groups()
    lhs, rhs = fork_index(fork), fork_index(name)
    if op == ">=":
        return lhs >= rhs
    if op == "<=":
        return lhs <= rhs
    if op == ">":
        return lhs > rhs
    if op == "<":
        return lhs < rhs
    return lhs == rhs


def network_matches(network: Optional[Iterable[str]], fork: str) -> bool:
    """An expect entry without `network` applies to every fork."""
    if not network:
        return True
    if isinstance(network, str):
        network = [network]
    return any(fork_matches(c, fork) for c in network)


# ---------------------------------------------------------------------------
# Transaction data and index selectors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DataEntry:
    index: int
    data: bytes
    label: Optional[str] = None


def _split_label(raw: str) -> Tuple[Optional[str], str]:
    s = raw.strip()
    if not s.startswith(":label"):
        return None, s
    parts = s.split(None, 2)
    if len(parts) < 2:
        raise FixtureError(f"invalid data label: {raw!r}")
    return parts[1], parts[2] if len(parts) == 3 else ""


def parse_indexes(selector: Any, size: int, labels: Dict[str, List[int]]) -> List[int]:
    """
    Resolve an index selector: -1 (all), an int, an "a-b" range, a
    ":label name" reference, or a list of those.
    """
    if isinstance(selector, list):
        out: List[int] = []
        for item in selector:
            out.extend(i for i in parse_indexes(item, size, labels) if i not in out)
        return out

    if isinstance(selector, str):
        s = selector.strip()
        if s.startswith(":label"):
            name = s[len(":label"):].strip()
            if name not in labels:
                raise FixtureError(f"unknown data label: {name}")
            return list(labels[name])
        if "-" in s[1:]:
            start, end = (int(p) for p in s.split("-", 1))
            return [i for i in range(start, end + 1) if i < size]
        selector = parse_number(s) if not s.startswith("-") else int(s)

    if isinstance(selector, int):
        if selector == -1:
            return list(range(size))
        if selector < 0 or selector >= size:
            raise FixtureError(f"index {selector} out of range (size {size})")
        return [selector]

    raise FixtureError(f"invalid index selector: {selector!r}")


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class StateTestBuilder:
    """Builds `StateTest`s from filler documents."""

    def __init__(self, compiler: Compiler, fork: str = str(STATETOOL_FORK)):
        self.compiler = compiler
        self.fork = fork

    def load_json(self, path: str, source: str) -> List[StateTest]:
        try:
            doc = json.loads(source)
        except json.JSONDecodeError as e:
            raise FixtureError(f"fail to load {path}: {e}")
        return self.load_document(path, doc)

    def load_yaml(self, path: str, source: str) -> List[StateTest]:
        try:
            doc = yaml.load(source, Loader=NoIntResolver)
        except yaml.YAMLError as e:
            raise FixtureError(f"fail to load {path}: {e}")
        return self.load_document(path, doc)

    def load_document(self, path: str, doc: Any) -> List[StateTest]:
        if not isinstance(doc, dict):
            raise FixtureError(f"fail to load {path}: top level is not a mapping")
        tests: List[StateTest] = []
        for name, body in doc.items():
            try:
                tests.extend(self._load_test(path, str(name), body))
            except (FixtureError, InvalidKeyError, KeyError, TypeError) as e:
                raise FixtureError(f"fail to load {path} ({name}): {e}")
        return tests

    def _load_test(self, path: str, name: str, body: Dict[str, Any]) -> List[StateTest]:
        env = self._parse_env(body["env"])
        pre = self._parse_pre(body.get("pre", {}))
        tx = body["transaction"]

        secret_key = _decode_bytes(str(tx["secretKey"]))
        sender = PrivateKey(secret_key).address
        if tx.get("sender") and parse_address(tx["sender"]) != sender:
            raise FixtureError(f"sender does not match secretKey in {name}")

        to = parse_address(tx["to"]) if str(tx.get("to", "")).strip() else None
        gas_price = parse_number(tx.get("gasPrice", tx.get("maxFeePerGas", 0)))
        nonce = parse_number(tx.get("nonce", 0))

        data_entries = []
        for i, raw in enumerate(tx.get("data", [""])):
            if isinstance(raw, dict):
                raw = raw.get("data", "")
            label, code = _split_label(str(raw))
            data_entries.append(DataEntry(i, self.compiler.compile(code), label))
        gas_limits = [parse_number(g) for g in tx.get("gasLimit", [])]
        values = [parse_number(v) for v in tx.get("value", ["0"])]

        labels: Dict[str, List[int]] = {}
        for entry in data_entries:
            if entry.label is not None:
                labels.setdefault(entry.label, []).append(entry.index)

        expects = []
        for expect in body.get("expect", []):
            if not network_matches(expect.get("network"), self.fork):
                continue
            indexes = expect.get("indexes", {})
            expects.append((
                set(parse_indexes(indexes.get("data", -1), len(data_entries), labels)),
                set(parse_indexes(indexes.get("gas", -1), len(gas_limits), labels)),
                set(parse_indexes(indexes.get("value", -1), len(values), labels)),
                expect,
            ))

        tests = []
        for d, g, v in itertools.product(
            range(len(data_entries)), range(len(gas_limits)), range(len(values))
        ):
            expect = next((e for ds, gs, vs, e in expects if d in ds and g in gs and v in vs), None)
            if expect is None:
                continue

            exception = self._expects_exception(expect.get("expectException"))
            tests.append(StateTest(
                path=path,
                id=f"{name}_d{d}_g{g}_v{v}",
                env=env,
                secret_key=secret_key,
                sender=sender,
                to=to,
                gas_limit=gas_limits[g],
                gas_price=gas_price,
                nonce=nonce,
                value=values[v],
                data=data_entries[d].data,
                pre=pre,
                result={} if exception else self._parse_result(expect.get("result", {})),
                exception=exception,
            ))
        return tests

    def _expects_exception(self, value: Any) -> bool:
        if not value:
            return False
        if isinstance(value, dict):
            return any(network_matches([k], self.fork) for k in value)
        return True

    def _parse_env(self, env: Dict[str, Any]) -> Env:
        return Env(
            current_coinbase=parse_address(env["currentCoinbase"]),
            current_difficulty=parse_number(env.get("currentDifficulty", 0)),
            current_gas_limit=parse_number(env["currentGasLimit"]),
            current_number=parse_number(env["currentNumber"]),
            current_timestamp=parse_number(env["currentTimestamp"]),
            current_base_fee=parse_number(env.get("currentBaseFee", "0x0a")),
            previous_hash=parse_hash(env.get("previousHash")),
        )

    def _parse_pre(self, pre: Dict[str, Any]) -> Dict[bytes, Account]:
        accounts = {}
        for addr, acc in pre.items():
            address = parse_address(addr)
            accounts[address] = Account(
                address=address,
                balance=parse_number(acc.get("balance", 0)),
                nonce=parse_number(acc.get("nonce", 0)),
                code=self.compiler.compile(acc.get("code", "")),
                storage=parse_storage(acc.get("storage")),
            )
        return accounts

    def _parse_result(self, result: Dict[str, Any]) -> Dict[bytes, AccountMatch]:
        post = {}
        for addr, acc in result.items():
            address = parse_address(addr)
            acc = acc or {}
            post[address] = AccountMatch(
                address=address,
                balance=parse_number(acc["balance"]) if "balance" in acc else None,
                nonce=parse_number(acc["nonce"]) if "nonce" in acc else None,
                code=self.compiler.compile(acc["code"]) if "code" in acc else None,
                storage=parse_storage(acc.get("storage")),
            )
        return post


# ---------------------------------------------------------------------------
# Suite loading
# ---------------------------------------------------------------------------

def load_statetests_suite(
    suite: TestSuite,
    config: Config,
    compiler: Compiler,
) -> List[StateTest]:
    """
    Load every state test of a suite.

    Files whose path contains a `skip_paths` entry are not read; tests listed
    in `skip_tests` or not allowed by the suite are dropped.
    """
    skip_paths = config.all_skip_paths
    skip_tests = set(config.all_skip_tests)
    builder = StateTestBuilder(compiler, fork=config.tracer.fork)

    files = sorted({
        f for pattern in suite.paths for f in glob.glob(pattern, recursive=True)
    })

    tests: List[StateTest] = []
    for file in files:
        if any(skip in file for skip in skip_paths):
            continue
        ext = Path(file).suffix
        if ext not in FILLER_EXTENSIONS or not Path(file).is_file():
            continue

        source = Path(file).read_text(encoding="utf-8")
        if ext == ".yml":
            tcs = builder.load_yaml(file, source)
        else:
            tcs = builder.load_json(file, source)

        tests.extend(t for t in tcs if t.id not in skip_tests and suite.allowed(t.id))

    logger.info("Loaded %d state tests from %d files for suite %s", len(tests), len(files), suite.id)
    return tests
