"""
Test suite for flare-vault

Contains:
- tests/unit/          : Unit tests for the vault engine, ledger, chain client and API
"""
