from typing import Optional, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.domain.catalog.models import Lab, DiagnosticTest, HealthPackage


class CatalogRepository:
    """Read access to labs, tests and packages"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_lab(self, lab_id: str) -> Optional[Lab]:
        result = await self.db.execute(select(Lab).where(Lab.id == lab_id))
        return result.scalar_one_or_none()

    async def find_test(self, test_id: str) -> Optional[DiagnosticTest]:
        result = await self.db.execute(select(DiagnosticTest).where(DiagnosticTest.id == test_id))
        return result.scalar_one_or_none()

    async def find_package(self, package_id: str) -> Optional[HealthPackage]:
        result = await self.db.execute(select(HealthPackage).where(HealthPackage.id == package_id))
        return result.scalar_one_or_none()

    async def list_active_labs(
        self,
        skip: int = 0,
        limit: int = 20,
        city: Optional[str] = None,
        search: Optional[str] = None
    ) -> Tuple[List[Lab], int]:
        conditions = [Lab.is_active.is_(True)]
        if search:
            conditions.append(Lab.name.ilike(f"%{search}%"))
        if city:
            # labs without a city (missing key or JSON null) never match
            conditions.append(func.lower(Lab.address["city"].as_string()) == city.lower())

        result = await self.db.execute(
            select(Lab).where(*conditions).order_by(Lab.name).offset(skip).limit(limit)
        )
        labs = list(result.scalars().all())

        count_result = await self.db.execute(select(func.count(Lab.id)).where(*conditions))
        return labs, count_result.scalar_one()
