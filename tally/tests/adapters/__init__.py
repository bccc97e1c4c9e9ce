"""Tests for adapter implementations.

These tests exercise adapters against the real filesystem, the real
engine, and a rich console writing to an in-memory buffer.
"""
