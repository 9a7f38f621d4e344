# Routes package init
"""
Doll Pin API: Routes Package
==============================

Route Inventory:
    - dolls.py:   POST/GET       /api/dolls
                  GET/PUT/DELETE /api/dolls/{id}
                  POST           /api/dolls/{id}/pins
                  DELETE         /api/dolls/{id}/pins/{pinId}
    - upload.py:  POST   /api/upload
                  POST   /api/upload/multiple
                  DELETE /api/upload/{filename}
    - health.py:  GET /  and  GET /health

Routes stay thin: pull data out of the request, call a service, wrap the
result in the `{message, ...}` envelope. Business rules live in services.
"""
