"""Write paths for meter readings and bills.

Each submission stores its domain record together with a notification row in
a single transaction, then announces the committed record on the broadcast
channel. If anything fails before the commit, nothing is stored and nothing
is announced.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from broadcast import BroadcastChannel
from config import settings
from database import Bill, MeterReading, Notification, User, utcnow
from errors import (
    ConflictError,
    InvalidSubmissionError,
    NotFoundError,
    PersistenceError,
)
from schemas import BillOut, BroadcastPayload, MeterReadingOut

logger = logging.getLogger(__name__)

NEW_METER_READING_EVENT = "newMeterReading"
NEW_BILL_EVENT = "newBill"

METER_READING_NOTICE = "New meter reading uploaded."
BILL_NOTICE = "A new bill has been generated."


@contextmanager
def _reading_from_store(what: str):
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Loading %s failed", what)
        raise PersistenceError(f"Failed to load {what}") from exc


def _require_account(db: Session, account_id: int) -> User:
    with _reading_from_store("account"):
        account = db.get(User, account_id)
    if account is None:
        raise NotFoundError(f"User {account_id} not found")
    return account


def _commit_with_notice(db: Session, record, account_id: int, notice: str):
    db.add(record)
    db.add(Notification(user_id=account_id, message=notice, notification_date=utcnow()))
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(record)
    return record


async def submit_meter_reading(
    db: Session,
    channel: BroadcastChannel,
    image_store,
    account_id: int,
    value: float,
    image: Optional[bytes] = None,
) -> MeterReading:
    _require_account(db, account_id)

    image_url = None
    if image is not None:
        # the SDK call blocks; ImageUploadError propagates before any write
        image_url = await run_in_threadpool(image_store.upload, image)

    reading = MeterReading(
        user_id=account_id,
        reading_value=value,
        image_url=image_url,
        reading_date=utcnow(),
    )
    try:
        _commit_with_notice(db, reading, account_id, METER_READING_NOTICE)
    except SQLAlchemyError as exc:
        logger.exception("Saving meter reading for user %s failed", account_id)
        raise PersistenceError("Failed to save meter reading") from exc

    payload = BroadcastPayload(
        message=f"New meter reading from user ID: {account_id}",
        data=MeterReadingOut.model_validate(reading).model_dump(mode="json"),
    )
    channel.publish(NEW_METER_READING_EVENT, payload.model_dump())
    logger.info("Meter reading %s recorded for user %s", reading.id, account_id)
    return reading


async def submit_bill(
    db: Session,
    channel: BroadcastChannel,
    account_id: int,
    meter_reading_id: int,
    amount_due: float,
    due_date: date,
) -> Bill:
    _require_account(db, account_id)

    with _reading_from_store("meter reading"):
        reading = db.get(MeterReading, meter_reading_id)
        already_billed = reading is not None and reading.bill is not None
    if reading is None:
        raise NotFoundError(f"Meter reading {meter_reading_id} not found")
    if reading.user_id != account_id:
        raise InvalidSubmissionError(
            f"Meter reading {meter_reading_id} does not belong to user {account_id}"
        )
    if already_billed:
        raise ConflictError(f"Meter reading {meter_reading_id} is already billed")

    bill = Bill(
        user_id=account_id,
        meter_reading_id=meter_reading_id,
        amount_due=amount_due,
        due_date=due_date,
    )
    try:
        _commit_with_notice(db, bill, account_id, BILL_NOTICE)
    except IntegrityError as exc:
        # lost a race with a concurrent bill for the same reading
        raise ConflictError(f"Meter reading {meter_reading_id} is already billed") from exc
    except SQLAlchemyError as exc:
        logger.exception("Saving bill for user %s failed", account_id)
        raise PersistenceError("Failed to create bill") from exc

    payload = BroadcastPayload(
        message=f"New bill generated for user ID: {account_id}",
        data=BillOut.model_validate(bill).model_dump(mode="json"),
    )
    channel.publish(NEW_BILL_EVENT, payload.model_dump())
    logger.info("Bill %s generated for user %s", bill.id, account_id)
    return bill


def list_recent_notifications(db: Session, limit: Optional[int] = None) -> List[Notification]:
    limit = settings.notification_feed_limit if limit is None else limit
    with _reading_from_store("notifications"):
        return (
            db.query(Notification)
            .order_by(Notification.notification_date.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )
