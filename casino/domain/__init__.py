"""Domain layer (pure logic).

- Keep game rules, payouts and draws here.
- Avoid I/O: no DB sessions, no HTTP/FastAPI, no Redis.
- Randomness comes in through RandomOutcomeProvider; time is passed in as arguments.
"""
