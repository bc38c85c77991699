"""Admin tooling."""

from .service import AccountSummary, AdminService

__all__ = ["AccountSummary", "AdminService"]
