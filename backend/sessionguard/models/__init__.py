"""Convenience imports for metadata discovery."""

from sessionguard.models.user import User
from sessionguard.models.refresh_token import RefreshToken

__all__ = ["RefreshToken", "User"]
