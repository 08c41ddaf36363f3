"""
Expense Tracker API — Shared FastAPI Dependencies
===================================================

What:  Accessors for the Application aggregate stored on `app.state`.
How:   Handlers receive the owned components through Depends() rather than
       importing module-level handles.

Example usage in a route:
    @router.get("/me")
    async def me(db=Depends(get_database)):
        return await db.users.find_one(...)
"""

from typing import Any

from fastapi import Depends, Request


def get_application(request: Request):
    return request.app.state.application


def get_database(application=Depends(get_application)) -> Any:
    """
    The shared MongoDB database handle.

    Raises:
        DatabaseUnavailableError: The manager is not connected (→ 503)
    """
    return application.database.database
