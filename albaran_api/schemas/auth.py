import uuid
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, Literal

from .clients import Address


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)

    @field_validator('first_name', 'last_name', mode='before')
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class VerifyEmailRequest(BaseModel):
    email: EmailStr
    code: str = Field(pattern=r"^\d{6}$")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(min_length=8)


class RestoreAccountRequest(BaseModel):
    email: EmailStr
    password: str


class OnboardingRequest(BaseModel):
    """Personal data a user may edit about themselves."""
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)


class CompanyRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    cif: Optional[str] = None
    address: Optional[Address] = None


class CompanyResponse(BaseModel):
    id: uuid.UUID
    name: str
    cif: Optional[str] = None
    address: Optional[Address] = None
    founder_id: Optional[uuid.UUID] = None

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    role: str
    validated: bool
    company_id: Optional[uuid.UUID] = None
    company_role: Optional[str] = None
    company: Optional[CompanyResponse] = None
    profile_picture: Optional[str] = None
    deleted: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class InvitationRequest(BaseModel):
    email: EmailStr
    role: Literal["invited", "admin", "user"] = "user"


class InvitationResponse(BaseModel):
    id: uuid.UUID
    inviter_id: uuid.UUID
    inviter_email: Optional[str] = None
    invitee_id: uuid.UUID
    invitee_email: Optional[str] = None
    company_id: uuid.UUID
    company_name: str
    status: str
    role: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
