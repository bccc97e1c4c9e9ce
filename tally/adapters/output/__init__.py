"""Output adapters for operator-facing report text.

Implementations:
- Console (rich, writes to stderr)
"""
