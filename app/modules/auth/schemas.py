from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID


class AuthContext(BaseModel):
    """Usuario autenticado dentro de una empresa (tenant)."""
    user_id: UUID
    tenant_id: Optional[UUID] = None
    user_role: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)

    def has_permission(self, permission: str) -> bool:
        if self.user_role == "owner":
            return True
        return permission in self.permissions
