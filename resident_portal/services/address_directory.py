from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from ..models.address_area import AddressArea, AreaLevel


class AddressDirectory:
    """
    Read-only PSGC lookups (region -> province -> city -> barangay).

    Names are cached per instance; one directory per request/session is the
    intended lifetime.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self._names: Dict[str, Optional[str]] = {}

    def _children(self, level: AreaLevel, parent_code: Optional[str]) -> List[AddressArea]:
        stmt = select(AddressArea).where(AddressArea.level == level)
        if parent_code is not None:
            stmt = stmt.where(AddressArea.parent_code == parent_code)
        rows = list(self.session.exec(stmt.order_by(AddressArea.name)).all())
        for row in rows:
            self._names[row.code] = row.name
        return rows

    def regions(self) -> List[AddressArea]:
        return self._children(AreaLevel.REGION, None)

    def provinces_of(self, region_code: str) -> List[AddressArea]:
        return self._children(AreaLevel.PROVINCE, region_code)

    def cities_of(self, province_code: str) -> List[AddressArea]:
        return self._children(AreaLevel.CITY, province_code)

    def barangays_of(self, city_code: str) -> List[AddressArea]:
        return self._children(AreaLevel.BARANGAY, city_code)

    def name_of(self, code: Optional[str]) -> Optional[str]:
        if not code:
            return None
        if code not in self._names:
            row = self.session.exec(select(AddressArea).where(AddressArea.code == code)).first()
            self._names[code] = row.name if row is not None else None
        return self._names[code]

    def resolve(self, entity: Any) -> Dict[str, Optional[str]]:
        """Address codes of a person/child mapped to display names (unknown code -> the code itself)."""
        out: Dict[str, Optional[str]] = {}
        for level in ("region", "province", "city", "barangay"):
            code = getattr(entity, level, None)
            out[f"{level}Name"] = self.name_of(code) or code
        return out
