from pydantic import BaseModel, ConfigDict, model_validator
from typing import Optional
import enum


class ActorRole(str, enum.Enum):
    """Roles recognised by the lifecycle API"""
    ADMIN = "admin"
    PRINCIPAL = "principal"
    HOD = "hod"
    FACULTY = "faculty"


class Actor(BaseModel):
    """
    The caller behind a lifecycle command.

    Passed explicitly into every engine/tracker call; the engine records it
    in the audit trail but never decides permissions from it.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    role: ActorRole
    institute_id: Optional[str] = None
    department_id: Optional[str] = None

    @model_validator(mode='after')
    def validate_hod_department(self):
        """HODs always act for exactly one department"""
        if self.role == ActorRole.HOD and not self.department_id:
            raise ValueError("HOD actors must carry a department_id")
        return self


class TokenData(BaseModel):
    """Claims carried by an access token"""
    sub: str
    role: ActorRole
    institute_id: Optional[str] = None
    department_id: Optional[str] = None
    type: str = "access"

    def to_actor(self) -> Actor:
        return Actor(
            id=self.sub,
            role=self.role,
            institute_id=self.institute_id,
            department_id=self.department_id,
        )
