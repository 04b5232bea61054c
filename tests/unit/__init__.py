"""
tests.unit
==========

Fast unit tests for typedkv. Shared fixtures live in tests/conftest.py.
"""
