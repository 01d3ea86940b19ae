from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.db import get_db
from marketmate.core.errors import ValidationError
from marketmate.models.category import Category
from marketmate.schemas.category import CategoryCreate, CategoryOut
from marketmate.services.auth import Actor, require_admin
from marketmate.services.retry import run_atomic

router = APIRouter()


@router.get("/categories", response_model=list[CategoryOut])
async def list_categories(db: AsyncSession = Depends(get_db)) -> list[CategoryOut]:
    rows = (await db.execute(select(Category).order_by(Category.name))).scalars().all()
    return [CategoryOut.model_validate(r) for r in rows]


@router.post("/admin/categories", response_model=CategoryOut, status_code=201)
async def create_category(
    payload: CategoryCreate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> CategoryOut:
    async def work() -> Category:
        if payload.parent_id and await db.get(Category, payload.parent_id) is None:
            raise ValidationError("Unknown parent category", details=[{"field": "parent_id"}])
        row = Category(name=payload.name.strip(), parent_id=payload.parent_id, updated_by=actor.user_id)
        db.add(row)
        await db.flush()
        return row

    return CategoryOut.model_validate(await run_atomic(db, work))
