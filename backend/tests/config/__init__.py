"""
Test configuration package.

Marker registration and shared constants for the test suite.
"""
