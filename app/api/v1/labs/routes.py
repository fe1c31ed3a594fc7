from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.domain.catalog.repository import CatalogRepository
from app.api.v1.labs.schemas import LabSummary, LabResponse
from app.infrastructure.database import get_db
from app.schemas.response import ApiResponse, Pagination

router = APIRouter(prefix="/labs", tags=["Labs"])


@router.get("", response_model=ApiResponse[List[LabSummary]])
async def list_labs(
    city: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """List active labs, optionally filtered by city or name"""
    labs, total = await CatalogRepository(db).list_active_labs(
        skip=(page - 1) * limit, limit=limit, city=city, search=search
    )
    return ApiResponse(
        data=[LabSummary.model_validate(lab) for lab in labs],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/{lab_id}", response_model=ApiResponse[LabResponse])
async def get_lab(lab_id: str, db: AsyncSession = Depends(get_db)):
    """Lab details with the tests and packages it offers"""
    lab = await CatalogRepository(db).find_lab(lab_id)
    if not lab or not lab.is_active:
        raise NotFoundError("Lab not found")
    return ApiResponse(data=LabResponse.model_validate(lab))
