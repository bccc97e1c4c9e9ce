"""Module source adapters for finding and loading user modules.

Implementations:
- Filesystem (recursive directory walk, importlib loading)
"""
