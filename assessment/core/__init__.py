"""
Core module: configuration, domain services and utilities.

Services are imported from their modules directly
(``from assessment.core.session_manager import SessionManager``) to keep
package import free of database setup.
"""
from .config import settings

__all__ = ["settings"]
