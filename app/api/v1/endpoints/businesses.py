"""Business CRUD endpoints - onboard tenants and manage their messaging settings."""

from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.database import get_db
from app.models.business import Business
from app.schemas.business import BusinessCreate, BusinessOut, BusinessUpdate
from app.utils.phone import normalize_phone

router = APIRouter()


@router.post("/", response_model=BusinessOut, status_code=201)
async def create_business(biz: BusinessCreate, db: AsyncSession = Depends(get_db)):
    data = biz.model_dump()
    data["owner_phone"] = normalize_phone(data.get("owner_phone"))
    data["twilio_phone_number"] = normalize_phone(data.get("twilio_phone_number"))
    business = Business(**data)
    db.add(business)
    await db.commit()
    await db.refresh(business)
    return business


@router.get("/{business_id}", response_model=BusinessOut)
async def get_business(business_id: UUID, db: AsyncSession = Depends(get_db)):
    business = await db.get(Business, business_id)
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")
    return business


@router.patch("/{business_id}", response_model=BusinessOut)
async def update_business(business_id: UUID, biz: BusinessUpdate, db: AsyncSession = Depends(get_db)):
    business = await db.get(Business, business_id)
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")

    updates = biz.model_dump(exclude_unset=True)
    for field in ("owner_phone", "twilio_phone_number"):
        if field in updates:
            updates[field] = normalize_phone(updates[field])
    for field, value in updates.items():
        setattr(business, field, value)

    await db.commit()
    await db.refresh(business)
    return business
