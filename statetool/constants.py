"""
statetool Constants

Process-wide constants and the `.env` backed settings. Settings read from
`.env` keep their built-in default reachable through `.default()`, which the
logger uses when a configured format turns out to be unusable.
"""
from typing import Union

from dotenv import dotenv_values

_env = dotenv_values(".env")


class ConfigString(str):
    """A `.env` string setting that remembers its default."""

    def __new__(cls, value, default):
        obj = super().__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default


class ConfigBool(int):
    """A `.env` flag; an int so it can be used directly in conditions."""

    def __new__(cls, value, default):
        obj = super().__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __eq__(self, other):
        return bool(self) == other

    def __hash__(self):
        return hash(bool(self))

    def __str__(self):
        return repr(bool(self))

    __repr__ = __str__


def parse_bool(value):
    """
    Return True/False for the literals "true"/"false" in any casing.

    Anything else, including non-strings, is returned unchanged.
    """
    if isinstance(value, str):
        folded = value.strip().casefold()
        if folded == "true":
            return True
        if folded == "false":
            return False
    return value


def _setting(name: str, default: str) -> Union[ConfigString, ConfigBool]:
    # dotenv yields None for keys declared without a value
    raw = _env.get(name)
    raw = default if raw is None else raw
    value = parse_bool(raw)
    if isinstance(value, bool):
        return ConfigBool(value, parse_bool(default))
    return ConfigString(raw, default)


# -- runner settings ---------------------------------------------------------
STATETOOL_BACKEND = _setting("STATETOOL_BACKEND", "pyevm")
STATETOOL_GETH_BINARY = _setting("STATETOOL_GETH_BINARY", "evm")
STATETOOL_FORK = _setting("STATETOOL_FORK", "Shanghai")
STATETOOL_CACHE_FILE = _setting("STATETOOL_CACHE_FILE", "results.cache")
STATETOOL_PROVER_COMMAND = _setting("STATETOOL_PROVER_COMMAND", "")

# -- logging -----------------------------------------------------------------
LOG_LEVEL = _setting("LOG_LEVEL", "INFO")
LOG_FORMAT = _setting("LOG_FORMAT", "%(asctime)s - %(levelname)s - %(name)s - %(message)s")
LOG_DATE_FORMAT = _setting("LOG_DATE_FORMAT", "%Y-%m-%dT%H:%M:%S")
LOG_CONSOLE_HIGHLIGHTING = _setting("LOG_CONSOLE_HIGHLIGHTING", "True")
LOG_FILE = _setting("LOG_FILE", "")
LOG_MAX_FILE_SIZE = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# -- trace requests ----------------------------------------------------------
# Fixtures are always signed for mainnet
CHAIN_ID = 1
ZERO_HASH = bytes(32)

# -- scheduling and results --------------------------------------------------
# Worker groups when proving per component; test i goes to group i % PARALLELISM
PARALLELISM = 20
# Result keys are "<id>#<path>"
RESULT_KEY_SEPARATOR = "#"

# Needles for prover/tracer faults that carry no structured kind
FAULT_TEXT_UNSATISFIED = "circuit was not satisfied"
FAULT_TEXT_UNIMPLEMENTED = "evm_unimplemented"

# -- circuit capacity (degree 20) --------------------------------------------
SUPER_CIRCUIT_DEGREE = 20
MAX_TXS = 100
MAX_INNER_BLOCKS = 100
MAX_EXP_STEPS = 10_000
MAX_CALLDATA = 600_000
MAX_BYTECODE = 600_000
MAX_MPT_ROWS = 1_000_000
MAX_KECCAK_ROWS = 1_000_000
MAX_POSEIDON_ROWS = 1_000_000
MAX_VERTICAL_ROWS = 1_000_000
MAX_RWS = 1_000_000
MAX_PRECOMPILE_EC_ADD = 50
MAX_PRECOMPILE_EC_MUL = 50
MAX_PRECOMPILE_EC_PAIRING = 2
