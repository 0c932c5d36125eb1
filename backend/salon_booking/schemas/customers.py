# backend/salon_booking/schemas/customers.py

from typing import Optional
from pydantic import BaseModel, Field


class CustomerIn(BaseModel):
    full_name: str = Field(min_length=1)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+$")
    phone: Optional[str] = None
