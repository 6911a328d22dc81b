"""Service layer for the game transaction engine.

- Routers do not touch DB sessions or the TTL store directly; they call the
  SettlementCoordinator and the read helpers here.
- This layer owns session/transaction boundaries.
- CRUD helpers used inside ``session.begin()`` never commit.
"""
