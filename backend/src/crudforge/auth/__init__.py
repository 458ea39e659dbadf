"""Authentication and access control for generated routes."""

from crudforge.auth.gate import AuthGate, access_stage
from crudforge.auth.jwt_service import JWTService
from crudforge.auth.password import PasswordService
from crudforge.auth.permissions import diff_permissions, is_allowed, permission_table
from crudforge.auth.types import Identity, TokenClaims

__all__ = [
    "AuthGate",
    "Identity",
    "JWTService",
    "PasswordService",
    "TokenClaims",
    "access_stage",
    "diff_permissions",
    "is_allowed",
    "permission_table",
]
