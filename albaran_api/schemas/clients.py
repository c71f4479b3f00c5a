import uuid
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator


class Address(BaseModel):
    street: Optional[str] = None
    number: Optional[int] = Field(default=None, ge=0)
    postal: Optional[int] = Field(default=None, ge=0)
    city: Optional[str] = None

    @field_validator('street', 'city', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


def _strip_optional(v):
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class ClientBase(BaseModel):
    name: str = Field(min_length=3, max_length=255)
    nif: Optional[str] = None
    address: Optional[Address] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None

    @field_validator('name', mode='before')
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('nif', 'phone', 'email', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        return _strip_optional(v)


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    """Fields a caller may change; anything else in the body is ignored."""
    name: Optional[str] = Field(default=None, min_length=3, max_length=255)
    nif: Optional[str] = None
    address: Optional[Address] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None

    @field_validator('name', mode='before')
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('nif', 'phone', 'email', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        return _strip_optional(v)


class ClientResponse(BaseModel):
    id: uuid.UUID
    name: str
    nif: Optional[str] = None
    address: Optional[Address] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    created_by: uuid.UUID
    company_id: Optional[uuid.UUID] = None
    deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
