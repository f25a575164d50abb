"""
Warthug Test Suite
==================

Test Organization
-----------------
- tests/unit/          : Pure formulas, validators, event bus, retry policy
- tests/unit/domain/   : Player and Card aggregates (no database)
- tests/service/       : Engine operations against a per-test SQLite database
- tests/integration/   : PostgreSQL through testcontainers (skipped without Docker)

Testing Philosophy
------------------
- Domain rules are tested on the aggregates directly with explicit instants
- Service tests drive the public engine facade with an injected clock
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
