"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the payments ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Deposits minus withdrawals equal the balance
2. balances.py - No negative balances, total == available + held
3. idempotency.py - Transaction ids take effect at most once
4. ordering.py - Records apply strictly in input order
5. determinism.py - Same input, same snapshot

These tests use hypothesis for property-based testing.
"""
