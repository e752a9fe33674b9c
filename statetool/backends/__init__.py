"""
statetool Tracer Backends

- `GethTracer`: step logs from an external `evm t8n` binary.
- `PyEvmTracer`: native block trace from an in-process py-evm run.

The backend is selected once, from the [tracer] configuration section.
"""

from ..config import TracerConfig
from ..exceptions import ConfigurationError
from ..statetest.tracing import ExecutionBackend
from .geth import GethTracer
from .pyevm import PyEvmTracer


def make_backend(config: TracerConfig) -> ExecutionBackend:
    if config.backend == "geth":
        return GethTracer(binary=config.geth_binary, fork=config.fork)
    if config.backend == "pyevm":
        return PyEvmTracer(fork=config.fork)
    raise ConfigurationError(f"Unknown tracer backend: {config.backend}")


__all__ = [
    "GethTracer",
    "PyEvmTracer",
    "make_backend",
]
