"""Integration tests running real test modules through the engine and controller."""
