"""
Infrastructure package - unified entry points for core services.

This package provides standardized, centralized access to:
- Database (db)
- Authentication (require_role, init_jwt)
- Logging (configure_logging, init_logging, get_logger)
"""

from detailers.infra.db import db
from detailers.infra.auth import require_role, init_jwt
from detailers.infra.log import configure_logging, init_logging, get_logger

__all__ = [
    "db",
    "require_role",
    "init_jwt",
    "configure_logging",
    "init_logging",
    "get_logger",
]
