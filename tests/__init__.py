"""
Goose Tap Ledger Test Suite
===========================

Test Organization
-----------------
- tests/unit/          : Pure rules plus services against a throwaway SQLite file
- tests/integration/   : PostgreSQL via testcontainers (row locks, concurrency)

Testing Philosophy
------------------
- Economy rules are pure and tested without any I/O
- Services run real transactions; only the clock is moved by editing rows
- Integration tests are skipped when Docker is not available
- Follow AAA pattern: Arrange, Act, Assert
"""
