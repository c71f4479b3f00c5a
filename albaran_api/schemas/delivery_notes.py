import uuid
from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, field_validator

from .projects import ProjectResponse


class WorkedHoursEntry(BaseModel):
    person: str = Field(min_length=1)
    hours: float = Field(ge=0)
    date: Optional[datetime] = None
    hourly_rate: float = Field(default=0, ge=0)
    description: Optional[str] = None


class MaterialEntry(BaseModel):
    name: str = Field(min_length=1)
    quantity: float = Field(ge=0)
    price: float = Field(default=0, ge=0)
    description: Optional[str] = None


class DeliveryNoteCreate(BaseModel):
    project_id: uuid.UUID
    date: Optional[datetime] = None
    worked_hours: List[WorkedHoursEntry] = Field(default_factory=list)
    materials: List[MaterialEntry] = Field(default_factory=list)
    observations: Optional[str] = None
    status: Literal["draft", "pending"] = "draft"

    @field_validator('observations', mode='before')
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class DeliveryNoteUpdate(BaseModel):
    """Editable fields. "signed" is only reachable through the sign endpoint."""
    project_id: Optional[uuid.UUID] = None
    date: Optional[datetime] = None
    worked_hours: Optional[List[WorkedHoursEntry]] = None
    materials: Optional[List[MaterialEntry]] = None
    observations: Optional[str] = None
    status: Optional[Literal["draft", "pending", "cancelled"]] = None

    @field_validator('observations', mode='before')
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class Signature(BaseModel):
    image: Optional[str] = None
    date: Optional[datetime] = None
    signer: Optional[str] = None


class DeliveryNoteResponse(BaseModel):
    id: uuid.UUID
    number: str
    project_id: uuid.UUID
    project: Optional[ProjectResponse] = None
    created_by: uuid.UUID
    company_id: Optional[uuid.UUID] = None
    date: Optional[datetime] = None
    worked_hours: List[WorkedHoursEntry] = Field(default_factory=list)
    materials: List[MaterialEntry] = Field(default_factory=list)
    status: str
    signature: Optional[Signature] = None
    pdf_url: Optional[str] = None
    observations: Optional[str] = None
    total_amount: float = 0
    deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PdfLocation(BaseModel):
    message: str
    pdf_url: Optional[str] = None
    number: Optional[str] = None
    status: str
