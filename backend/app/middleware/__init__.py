# Middleware package init
"""
FloraLens Backend - Middleware Package
========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Request ID] → [Logging] → [Upload Limit] → [GZip] → [CORS] → Route Handler

    1. Request ID: correlation ID for logs, error bodies and X-Request-ID
    2. Logging: one access line per request, tagged with the request ID
    3. Upload Limit: 413 from Content-Length before the body is parsed
    4. GZip / CORS: FastAPI built-ins

    The order is reversed for responses, so the access line carries the
    final status code and the response gains the X-Request-ID header.
"""
