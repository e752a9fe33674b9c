"""
statetool: conformance runner for state transition test fixtures

Core imports are lazily loaded so that importing the package does not pull
in py-evm. For direct module access, import from submodules:

    from statetool.statetest import StateTest, run_test
    from statetool.backends import PyEvmTracer
    from statetool.exceptions import TracerFault
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'cli':
        from .cli import cli
        return cli
    elif name == 'run_test':
        from .statetest import run_test
        return run_test
    elif name == 'StateTest':
        from .statetest import StateTest
        return StateTest
    raise AttributeError(f"module 'statetool' has no attribute {name!r}")

__all__ = ['cli', 'run_test', 'StateTest']
