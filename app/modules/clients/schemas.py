from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.common.schemas import CamelModel, RequestModel


class ClientBase(RequestModel):
    name: str = Field(..., min_length=1, max_length=255)
    client_number: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = Field(None, max_length=500)
    mf: Optional[str] = Field(None, max_length=100)

    @field_validator("name", "client_number", "address", "mf", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class ClientCreate(ClientBase):
    pass


class ClientUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    client_number: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[str] = Field(None, max_length=500)
    mf: Optional[str] = Field(None, max_length=100)

    @field_validator("name", "client_number", "address", "mf", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class ClientOut(CamelModel):
    id: UUID
    name: str
    client_number: str
    address: Optional[str] = None
    mf: Optional[str] = None
    created_at: datetime
    updated_at: datetime
