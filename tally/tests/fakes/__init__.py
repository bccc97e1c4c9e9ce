"""Fake/mock implementations of core ports for testing.

These in-memory implementations allow the run orchestrator to be tested
without a real engine, filesystem, or terminal:

- FakeEngine: Scripted engine event stream
- FakeModuleSource: In-memory setup, config, and test modules
- FakeOutput: Captured report output for assertion
"""

from .engine import FakeEngine
from .modules import FakeModuleSource
from .output import FakeOutput

__all__ = [
    "FakeEngine",
    "FakeModuleSource",
    "FakeOutput",
]
