"""
UnitTrack - Authentication Schemas

Session user resolved from the access token.
"""

from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class SessionUser(BaseModel):
    """Caller identity: admins act on any warehouse, others on their home warehouse."""
    model_config = ConfigDict(frozen=True)
    
    user_id: str
    role: UserRole = UserRole.EMPLOYEE
    home_warehouse_id: Optional[UUID] = None
    
    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
    
    def can_act_for_warehouse(self, warehouse_id: UUID) -> bool:
        return self.is_admin or (
            self.home_warehouse_id is not None and self.home_warehouse_id == warehouse_id
        )
