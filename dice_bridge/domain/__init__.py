"""Domain layer (pure logic).

- Keep dice matching and roll completion rules here.
- Avoid I/O: no DB sessions, no HTTP/FastAPI, no Redis.
- Prefer deterministic functions (time/random passed in as arguments if needed).
"""
