"""
Todo Backend package.

Holds the TodoRecord entity, its storage backends and the FastAPI app that
exposes them. The app lives in `todo_api.main` and is not imported here so
that the record and repositories can be used without FastAPI start-up side
effects (logging configuration, settings read).
"""

__version__ = "0.1.0"
