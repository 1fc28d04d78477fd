from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..models.address_area import AddressArea
from ..services.address_directory import AddressDirectory
from .deps import get_db

router = APIRouter(prefix="/addresses", tags=["addresses"])


def _options(rows: List[AddressArea]) -> List[Dict[str, str]]:
    return [{"code": r.code, "name": r.name} for r in rows]


@router.get("/regions")
def regions(db: Session = Depends(get_db)) -> List[Dict[str, str]]:
    return _options(AddressDirectory(db).regions())


@router.get("/regions/{code}/provinces")
def provinces(code: str, db: Session = Depends(get_db)) -> List[Dict[str, str]]:
    return _options(AddressDirectory(db).provinces_of(code))


@router.get("/provinces/{code}/cities")
def cities(code: str, db: Session = Depends(get_db)) -> List[Dict[str, str]]:
    return _options(AddressDirectory(db).cities_of(code))


@router.get("/cities/{code}/barangays")
def barangays(code: str, db: Session = Depends(get_db)) -> List[Dict[str, str]]:
    return _options(AddressDirectory(db).barangays_of(code))
