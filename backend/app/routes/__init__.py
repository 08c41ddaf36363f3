# Routes package init
"""
Expense Tracker API — Routes Package
======================================

Route Inventory:
    - root.py:       GET  /                     (banner)
    - health.py:     GET  /health               (liveness, never touches the DB)
                     GET  /health/ready         (readiness, 503 until connected)
    - auth.py:       POST /api/auth/register    (public, issues a token)
                     POST /api/auth/login       (public, issues a token)
    - protected.py:  GET  /api/protected        (bearer token required)
                     GET  /api/me               (bearer token required)

Routes stay thin: they pull collaborators from the Application via
dependencies, call a service, and shape the response.
"""
