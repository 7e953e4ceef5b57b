"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from backlinks.api import app

    uvicorn backlinks.api:app --reload
"""

from backlinks.api.app import app

__all__ = ["app"]
