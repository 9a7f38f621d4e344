"""
Doll Pin API: Application Package
===================================

Layers:

    ┌─────────────────────────────────────┐
    │      Routes (dolls, upload, health) │  ← HTTP only
    ├─────────────────────────────────────┤
    │  Services (DollService, pipeline)   │  ← rules, orchestration
    ├─────────────────────────────────────┤
    │  Models & Schemas                   │  ← SQLAlchemy row, Pydantic wire
    ├─────────────────────────────────────┤
    │  Database / ImageCodec              │  ← persistence, pixels
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
