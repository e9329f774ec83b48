from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator

from quickpharma.schemas.common import CamelModel


class UserCreate(CamelModel):
    email: EmailStr
    password: str
    first_name: str
    last_name: str
    contact_number: Optional[str] = None

    @field_validator('first_name', 'last_name')
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Name is required')
        return v.strip()


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    contact_number: Optional[str] = None
    role_name: str
    branch_id: Optional[int] = None
    slot_id: Optional[int] = None

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: Optional[str] = None
    user_id: Optional[int] = None
