# Middleware package init
"""
Expense Tracker API — Middleware Package
==========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Request ID] → [Body Limit] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Request ID first: every response, rejections included, carries it
    2. Body Limit: oversized uploads are refused before any other work,
       whether declared by Content-Length or streamed in chunks
    3. Logging: method, path, status and duration, tagged with the request ID
    4. GZip: compresses responses above 500 bytes
    5. CORS: FastAPI's CORSMiddleware (handles preflight)

The auth gate is not a middleware: it is a router-level dependency on the
protected routes (see app.auth), so public routes never pay for it.
"""
