"""
FloraLens Backend - Application Package Initializer
=====================================================

What: Marks the `app` directory as a Python package.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:

    ┌─────────────────────────────────────┐
    │      Routes (API Layer) + Auth      │  ← HTTP concerns, bearer tokens
    ├─────────────────────────────────────┤
    │   Services (Scan orchestration)     │  ← upload → analyze → persist
    ├─────────────────────────────────────┤
    │  Adapters (Storage, Vision)         │  ← local disk / S3, Gemini
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    client.py and cli.py sit outside this stack: they talk to it over HTTP.
"""

__version__ = "1.0.0"
