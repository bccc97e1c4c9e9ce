"""Test suite for the Tally test runner.

Organized into four categories:

1. core/: Unit tests for core orchestration logic
   - Minimal dependencies, fast execution
   - Uses in-memory fakes for ports

2. adapters/: Tests for adapter implementations
   - Real engine, filesystem, and rich console
   - Validates adapter behavior and error handling

3. integration/: Full runs through the real engine and controller

4. fakes/: Port implementations for testing
   - In-memory implementations of EnginePort, ModuleSourcePort, OutputPort
   - Used by core unit tests
"""
