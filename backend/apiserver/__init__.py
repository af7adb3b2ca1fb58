"""
API Server — Application Package Initializer
==============================================

What: Serverless HTTP API built on FastAPI.

Package layout:
    entrypoint.py   ← what the hosting runtime invokes (ASGI app + Lambda handler)
    bootstrap.py    ← cold start initialization gate
    main.py         ← FastAPI application factory and logging setup
    middleware/     ← cache headers, CORS policy, access log, error translation
    routes/         ← health (always mounted), auth + status (mounted at cold start)
    database.py     ← lazy async engine and connect routine
    config.py       ← environment configuration
    exceptions.py   ← exception hierarchy with HTTP status codes
"""

__version__ = "1.0.0"
