# bottlescan/schemas/auth.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str


class MeOut(BaseModel):
    id: int
    email: str
    role: str
    client_id: Optional[int] = None
    client_name: Optional[str] = None


class ClientCreate(BaseModel):
    client_name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)


class ClientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_name: str
    account_id: int
    created_at: datetime


class ClientCreatedOut(BaseModel):
    success: bool = True
    message: str = "Client created successfully"
    client_id: int
