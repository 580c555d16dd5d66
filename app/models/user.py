from sqlmodel import Field, SQLModel
from uuid import UUID, uuid4
from enum import Enum as PyEnum

class UserRole(str, PyEnum):
    USER = "USER"
    ADMIN = "ADMIN"

class User(SQLModel, table=True):
    uuid: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    name: str
    role: UserRole
    api_key: str = Field(index=True, unique=True)
    is_active: bool = True
