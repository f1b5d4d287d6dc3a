"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the market.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Token conservation, collateral backing and pool solvency
2. atomicity.py - All-or-nothing entry points
3. reentrancy.py - Non-reentrant guards
4. idempotency.py - Repeated calls with no new information change nothing
5. determinism.py - Reproducible behavior
6. temporal.py - Forward-only time, interest accrual and staleness

These tests use hypothesis for property-based testing.
"""
