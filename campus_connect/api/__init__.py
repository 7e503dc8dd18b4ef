"""HTTP layer of the Campus Connect identity backend."""

from campus_connect.api.app import create_app

__all__ = ["create_app"]
