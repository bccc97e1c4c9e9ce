"""External adapters for the Tally test runner.

This package contains the concrete collaborators the run orchestrator
talks to through the core port interfaces.

Adapter Organization:

- engine/: Test-execution engines emitting block lifecycle events
- discovery/: Finding and loading setup, config, and test modules
- output/: Writing the report to the terminal
"""
