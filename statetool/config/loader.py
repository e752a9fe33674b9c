"""
statetool TOML Configuration Loader

Loads Config.toml (suites, skip lists, tracer and prover settings) with
environment variable overrides.

Environment variable mapping:
    [tracer] backend      → STATETOOL_BACKEND
    [tracer] geth_binary  → STATETOOL_GETH_BINARY
    [tracer] fork         → STATETOOL_FORK
    [prover] command      → STATETOOL_PROVER_COMMAND
    [prover] super_circuit → STATETOOL_SUPER_CIRCUIT
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..logger import get_logger
from ..constants import (
    STATETOOL_BACKEND,
    STATETOOL_GETH_BINARY,
    STATETOOL_FORK,
    STATETOOL_PROVER_COMMAND,
    parse_bool,
)
from ..exceptions import ConfigurationError

logger = get_logger(__name__)

BACKENDS = ("geth", "pyevm")

DEFAULT_SUITE_PATHS = ["tests/src/GeneralStateTestsFiller/**/*"]


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class TestSuite:
    """
    [[suite]] entry.

    A test is allowed when it is in `allow_tests`, or, when the allow list
    is empty, when it is not in `ignore_tests`.
    """
    __test__ = False

    id: str = "default"
    paths: List[str] = field(default_factory=lambda: list(DEFAULT_SUITE_PATHS))
    max_steps: int = 1000
    max_gas: int = 0
    allow_tests: List[str] = field(default_factory=list)
    ignore_tests: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestSuite":
        return cls(
            id=data.get("id", "default"),
            paths=list(data.get("paths", DEFAULT_SUITE_PATHS)),
            max_steps=data.get("max_steps", 1000),
            max_gas=data.get("max_gas", 0),
            allow_tests=list(data.get("allow_tests", [])),
            ignore_tests=list(data.get("ignore_tests", [])),
        )

    def allowed(self, test_id: str) -> bool:
        if self.allow_tests:
            return test_id in self.allow_tests
        return test_id not in self.ignore_tests

    def validate(self) -> None:
        if not self.id:
            raise ConfigurationError("suite id must not be empty")
        if self.max_steps < 0:
            raise ConfigurationError(f"suite {self.id}: max_steps must be >= 0")
        if self.max_gas < 0:
            raise ConfigurationError(f"suite {self.id}: max_gas must be >= 0")
        if self.allow_tests and self.ignore_tests:
            raise ConfigurationError(
                f"suite {self.id}: allow_tests and ignore_tests are mutually exclusive"
            )


@dataclass
class SkipPaths:
    """[[skip_paths]] entry. A file is skipped when its path contains any entry."""
    desc: str = ""
    paths: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SkipPaths":
        return cls(desc=data.get("desc", ""), paths=list(data.get("paths", [])))


@dataclass
class SkipTests:
    """[[skip_tests]] entry."""
    desc: str = ""
    tests: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SkipTests":
        return cls(desc=data.get("desc", ""), tests=list(data.get("tests", [])))


@dataclass
class TracerConfig:
    """[tracer] section."""
    backend: str = str(STATETOOL_BACKEND)
    geth_binary: str = str(STATETOOL_GETH_BINARY)
    fork: str = str(STATETOOL_FORK)
    skip_self_destruct: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TracerConfig":
        return cls(
            backend=data.get("backend", str(STATETOOL_BACKEND)),
            geth_binary=data.get("geth_binary", str(STATETOOL_GETH_BINARY)),
            fork=data.get("fork", str(STATETOOL_FORK)),
            skip_self_destruct=data.get("skip_self_destruct", False),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("STATETOOL_BACKEND"):
            self.backend = v
        if v := os.environ.get("STATETOOL_GETH_BINARY"):
            self.geth_binary = v
        if v := os.environ.get("STATETOOL_FORK"):
            self.fork = v


@dataclass
class ProverConfig:
    """[prover] section. An empty command disables proving."""
    command: str = str(STATETOOL_PROVER_COMMAND)
    super_circuit: bool = False
    verbose: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProverConfig":
        return cls(
            command=data.get("command", str(STATETOOL_PROVER_COMMAND)),
            super_circuit=data.get("super_circuit", False),
            verbose=data.get("verbose", False),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("STATETOOL_PROVER_COMMAND"):
            self.command = v
        if v := os.environ.get("STATETOOL_SUPER_CIRCUIT"):
            self.super_circuit = parse_bool(v) is True

    @property
    def argv(self) -> List[str]:
        """The prover command split into arguments."""
        return shlex.split(self.command)


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass
class Config:
    """Complete runner configuration (Config.toml)."""
    suites: List[TestSuite] = field(default_factory=lambda: [TestSuite()])
    skip_paths: List[SkipPaths] = field(default_factory=list)
    skip_tests: List[SkipTests] = field(default_factory=list)
    tracer: TracerConfig = field(default_factory=TracerConfig)
    prover: ProverConfig = field(default_factory=ProverConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        suites = [TestSuite.from_dict(s) for s in data.get("suite", [])]
        return cls(
            suites=suites or [TestSuite()],
            skip_paths=[SkipPaths.from_dict(s) for s in data.get("skip_paths", [])],
            skip_tests=[SkipTests.from_dict(s) for s in data.get("skip_tests", [])],
            tracer=TracerConfig.from_dict(data.get("tracer", {})),
            prover=ProverConfig.from_dict(data.get("prover", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "Config":
        """
        Load configuration from a TOML file.

        Args:
            config_path: Path to Config.toml

        Returns:
            Config instance
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomli.load(f)
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}")

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.tracer.apply_env()
        self.prover.apply_env()

    # --- lookups ----------------------------------------------------------

    def suite(self, suite_id: str) -> TestSuite:
        for suite in self.suites:
            if suite.id == suite_id:
                return suite
        raise ConfigurationError(f"Suite {suite_id!r} not found in config")

    @property
    def all_skip_paths(self) -> List[str]:
        return [p for entry in self.skip_paths for p in entry.paths]

    @property
    def all_skip_tests(self) -> List[str]:
        return [t for entry in self.skip_tests for t in entry.tests]

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Returns:
            True if all valid

        Raises:
            ConfigurationError: on invalid config
        """
        seen = set()
        for suite in self.suites:
            suite.validate()
            if suite.id in seen:
                raise ConfigurationError(f"Duplicate suite id: {suite.id}")
            seen.add(suite.id)
        if self.tracer.backend not in BACKENDS:
            raise ConfigurationError(
                f"Invalid tracer backend: {self.tracer.backend} (expected one of {', '.join(BACKENDS)})"
            )
        if self.tracer.backend == "geth" and not self.tracer.geth_binary:
            raise ConfigurationError("geth backend requires tracer.geth_binary")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "suite": [
                {
                    "id": s.id,
                    "paths": list(s.paths),
                    "max_steps": s.max_steps,
                    "max_gas": s.max_gas,
                    "allow_tests": list(s.allow_tests),
                    "ignore_tests": list(s.ignore_tests),
                }
                for s in self.suites
            ],
            "skip_paths": [{"desc": s.desc, "paths": list(s.paths)} for s in self.skip_paths],
            "skip_tests": [{"desc": s.desc, "tests": list(s.tests)} for s in self.skip_tests],
            "tracer": {
                "backend": self.tracer.backend,
                "geth_binary": self.tracer.geth_binary,
                "fork": self.tracer.fork,
                "skip_self_destruct": self.tracer.skip_self_destruct,
            },
            "prover": {
                "command": self.prover.command,
                "super_circuit": self.prover.super_circuit,
                "verbose": self.prover.verbose,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> Config:
    """
    Load runner configuration.

    Resolution order:
        1. Explicit *path* argument
        2. STATETOOL_CONFIG env var
        3. ./Config.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("STATETOOL_CONFIG", "Config.toml")

    return Config.from_file(path)
