from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class JobCreate(BaseModel):
    job_address: str = Field(min_length=1, max_length=300)
    client_name: str | None = None
    project_name: str | None = None


class JobOut(BaseModel):
    id: uuid.UUID
    job_address: str
    client_name: str | None
    project_name: str | None
    created_at: datetime


class JobCostOut(BaseModel):
    id: uuid.UUID
    category: str
    amount: Decimal
    description: str | None = None
    supplier: str | None = None
    trade: str | None = None
    contractor: str | None = None
    invoice_date: str | None = None
    cartage_amount: Decimal | None = None
    total_amount: Decimal | None = None
    created_at: datetime
