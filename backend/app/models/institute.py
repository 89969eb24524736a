"""
Institute directory models
- Institute, Department

Owned by the department-directory workflow; the lifecycle only reads them
to scope sessions.
"""

from sqlalchemy import Column, String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.core.types import GUID, UTCDateTime, generate_uuid, utcnow


class Institute(Base):
    """College/Institution"""
    __tablename__ = "institutes"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    code = Column(String(50), unique=True, nullable=False)  # e.g., JNTUH, CBIT

    created_at = Column(UTCDateTime, default=utcnow)

    departments = relationship("Department", back_populates="institute", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Institute {self.code}>"


class Department(Base):
    """Department within an institute"""
    __tablename__ = "departments"
    __table_args__ = (
        UniqueConstraint("institute_id", "code", name="uq_departments_institute_code"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    institute_id = Column(GUID, ForeignKey("institutes.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)  # e.g., Computer Science and Engineering
    code = Column(String(20), nullable=False)   # e.g., CSE

    # HOD details
    hod_id = Column(GUID, nullable=True)

    is_active = Column(Boolean, default=True)
    created_at = Column(UTCDateTime, default=utcnow)

    institute = relationship("Institute", back_populates="departments")

    def __repr__(self):
        return f"<Department {self.code}>"
