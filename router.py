from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session
from typing import List, Optional

from broadcast import BroadcastChannel
from database import get_db
from dependencies import get_channel, get_image_store
from notification_service import (
    list_recent_notifications,
    submit_bill,
    submit_meter_reading,
)
from schemas import (
    BillCreate,
    BillEnvelope,
    MeterReadingEnvelope,
    NotificationOut,
)


router = APIRouter()


@router.post(
    "/meter-reading",
    response_model=MeterReadingEnvelope,
    status_code=status.HTTP_201_CREATED,
)
async def create_meter_reading(
    user_id: Optional[int] = Form(None),
    reading_value: Optional[float] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    channel: BroadcastChannel = Depends(get_channel),
    image_store=Depends(get_image_store),
):
    if user_id is None or reading_value is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields"
        )

    image_bytes = await image.read() if image is not None else None

    reading = await submit_meter_reading(
        db,
        channel,
        image_store,
        account_id=user_id,
        value=reading_value,
        image=image_bytes,
    )
    return {"success": True, "newReading": reading}


@router.post(
    "/bills", response_model=BillEnvelope, status_code=status.HTTP_201_CREATED
)
async def create_bill(
    bill: BillCreate,
    db: Session = Depends(get_db),
    channel: BroadcastChannel = Depends(get_channel),
):
    new_bill = await submit_bill(
        db,
        channel,
        account_id=bill.user_id,
        meter_reading_id=bill.meter_reading_id,
        amount_due=bill.amount_due,
        due_date=bill.due_date,
    )
    return {"success": True, "newBill": new_bill}


@router.get("/notifications", response_model=List[NotificationOut])
async def get_notifications(db: Session = Depends(get_db)):
    return list_recent_notifications(db)
