"""
Expense Tracker API — Application Package
===========================================

What: The HTTP backend for the Smart Expense Tracker.
Who:  Imported by uvicorn (``app.main:app``), by ``python -m app`` and by pytest.

Layout:

    ┌─────────────────────────────────────┐
    │   Application (process lifecycle)   │  ← signals, drain, exit codes
    ├─────────────────────────────────────┤
    │      Routes + Middleware (HTTP)     │  ← auth gate, errors, health
    ├─────────────────────────────────────┤
    │        Services (user accounts)     │
    ├─────────────────────────────────────┤
    │   DatabaseManager (MongoDB client)  │  ← retry, state, close
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
