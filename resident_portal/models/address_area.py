from __future__ import annotations

from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class AreaLevel(str, Enum):
    REGION = "region"
    PROVINCE = "province"
    CITY = "city"
    BARANGAY = "barangay"


class AddressArea(SQLModel, table=True):
    """
    PSGC reference row (region -> province -> city/municipality -> barangay).

    Read-only for this service: rows are provisioned by the reference-data
    import, the intake workflow only resolves codes to names.
    """

    __tablename__ = "address_areas"

    id: Optional[int] = Field(default=None, primary_key=True)

    code: str = Field(index=True, unique=True, max_length=12)   # "104305040"
    name: str = Field(index=True, max_length=128)               # "Bonbon"
    level: AreaLevel = Field(index=True)
    parent_code: Optional[str] = Field(default=None, index=True, max_length=12)
