"""Test-execution engine adapters.

Implementations:
- BlockEngine (in-process asyncio engine for describe/before/after/it)
"""
