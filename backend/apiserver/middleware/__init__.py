"""
API Server — Middleware Package
=================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [NoCache headers] → [CORS] → [Request logging] → [Error handling]
            → [Body limit] → Route

    Why this order:
    1. NoCache OUTERMOST: even a CORS preflight answer must not be cached
    2. CORS: answers preflight before any logging or routing happens
    3. Logging: measures latency and sees the final status, errors included
    4. Error handling: converts route exceptions into JSON responses
       that still travel back through logging, CORS and NoCache
    5. Body limit INNERMOST: its 413 is produced by the error handler

The initialization gate runs before all of these (entrypoint.py).
"""
