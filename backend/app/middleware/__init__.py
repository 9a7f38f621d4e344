# Middleware package init
"""
Doll Pin API: Middleware Package
==================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Request ID] → [Access Log] → [GZip] → [CORS] → Route Handler

    Request ID runs first so the access log line and any error envelope
    carry the same id the client sees in X-Request-ID.
"""
