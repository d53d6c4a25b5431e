# Security module - Persisted tool permissions
# No record means ask; only ALWAYS/NEVER are stored

from .permissions import PermissionLevel, PermissionRecord, PermissionStore

__all__ = ["PermissionLevel", "PermissionRecord", "PermissionStore"]
