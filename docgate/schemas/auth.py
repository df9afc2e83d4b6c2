
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from docgate.auth.gate import Role


class LoginIn(BaseModel):
    username: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=1, max_length=256)


class PasswordChangeIn(BaseModel):
    current_password: str = Field(min_length=1, max_length=256)
    new_password: str = Field(min_length=8, max_length=256)


class UserCreateIn(BaseModel):
    username: str = Field(min_length=3, max_length=120)
    email: EmailStr
    full_name: str = Field(min_length=2, max_length=255)
    password: str = Field(min_length=8, max_length=256)
    role: Role = Role.USER


class UserOut(BaseModel):
    id: int
    username: str
    email: str
    full_name: str
    role: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True
