"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the margin-lending engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. solvency.py - Pool borrow never exceeds supply; cash covers supply minus borrow
2. settlement.py - Auction fills conserve debt and collateral in both regimes
3. conservation.py - Custody totals never change except by minting
4. atomicity.py - Rejected operations leave no trace
5. determinism.py - The same operations produce the same state and events

These tests use hypothesis for property-based testing.
"""
