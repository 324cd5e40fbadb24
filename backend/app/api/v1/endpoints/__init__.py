# API endpoints
from . import auth, health, public, resources, seminars, storage

__all__ = ["auth", "health", "public", "resources", "seminars", "storage"]
