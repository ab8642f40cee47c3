"""
PDFSign Backend: Application Package
=====================================

What:  Backend for uploading PDFs, burning a text or image signature mark into
       a page, and keeping a record of every signing operation.
Who:   Imported by uvicorn (`pdfsign.main:app`), Alembic and pytest.

Architecture Note:
    The layering mirrors a classic service backend:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Signing, Documents)     │  ← Orchestration, validation
    ├─────────────────────────────────────┤
    │  Collaborators (store, mail, auth)  │  ← Object store, SMTP, tokens
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Every collaborator is constructed by `create_app()` and hung off
    `app.state`; nothing opens a connection at import time.
"""

__version__ = "1.0.0"
