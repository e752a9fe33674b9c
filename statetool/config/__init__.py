"""
statetool Configuration

Loads Config.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    Config,
    TestSuite,
    SkipPaths,
    SkipTests,
    TracerConfig,
    ProverConfig,
    BACKENDS,
    load_config,
)

__all__ = [
    "Config",
    "TestSuite",
    "SkipPaths",
    "SkipTests",
    "TracerConfig",
    "ProverConfig",
    "BACKENDS",
    "load_config",
]
