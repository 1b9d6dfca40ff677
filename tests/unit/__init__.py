"""
tests.unit
==========

Example-based tests for pathkv: client operations, iteration, transactions,
configuration, errors, metrics and the command line. Fixtures live in
`tests/conftest.py`.
"""
