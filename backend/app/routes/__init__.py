# Routes package init
"""
FloraLens Backend - API Routes Package
========================================

What:  HTTP route handlers that accept requests and return responses.

Route Inventory:
    - scans.py:   POST /api/scans/upload     (store + analyze + persist one photo)
                  GET  /api/scans            (caller's scans, newest first)
                  GET  /api/scans/{id}       (one scan, owner only)
    - files.py:   GET  /api/files/{key}      (signed local image URLs)
    - health.py:  GET  /health               (service health check)

Routes stay THIN: extract request data, resolve the RequestContext, call
the service. Business rules live in services.
"""
