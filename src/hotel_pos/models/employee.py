import enum
from sqlalchemy import Column, Integer, String, DateTime, func, Enum
from ..db.base import Base


class StaffRoleEnum(str, enum.Enum):
    waiter = "waiter"
    chef = "chef"
    accountant = "accountant"
    admin = "admin"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(String(64), nullable=False, index=True)
    name = Column(String(128), nullable=False)
    role = Column(Enum(StaffRoleEnum, name="staff_role"), nullable=False, default=StaffRoleEnum.waiter)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
