# Middleware package init
"""
Notarium Backend — Middleware Package
=======================================

What:  Cross-cutting concerns applied to every request.
Why:   Keeps rate limiting, tracing, size limits and access logging out of
       the route handlers.

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Body Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    1. Rate Limit FIRST: reject abusive clients (and credential stuffing)
       before any processing
    2. Body Limit: refuse oversized uploads from their Content-Length alone
    3. Request ID: correlation ID for logs and error bodies
    4. Logging: one access line per request, tagged with the request ID
"""
