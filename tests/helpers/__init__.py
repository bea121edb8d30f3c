"""
Test helper utilities for breathco testing.

Provides synthetic breath windows and sensor streams for unit and
integration tests.
"""
