# schemas.py
from pydantic import BaseModel, Field, constr
from datetime import date, datetime
from typing import Any, Optional


class RoleOut(BaseModel):
    name: str

    class Config:
        from_attributes = True


class UserBase(BaseModel):
    username: Optional[constr(min_length=3, max_length=50)] = None
    password: Optional[str] = None
    role_id: Optional[int] = None
    purok: Optional[str] = None


class UserCreate(UserBase):
    pass


class UserUpdate(UserBase):
    pass


class UserLogin(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class UserOut(BaseModel):
    id: int
    username: str
    role_id: int
    purok: Optional[str] = None
    role: Optional[RoleOut] = None

    class Config:
        from_attributes = True


class UserEnvelope(BaseModel):
    success: bool = True
    user: UserOut


class SessionUser(BaseModel):
    id: int
    username: str
    role: str
    purok: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool = True
    token: str
    user: SessionUser


class MeterReadingOut(BaseModel):
    id: int
    user_id: int
    reading_value: float
    image_url: Optional[str] = None
    reading_date: datetime

    class Config:
        from_attributes = True


class MeterReadingEnvelope(BaseModel):
    success: bool = True
    newReading: MeterReadingOut


class BillCreate(BaseModel):
    user_id: int
    meter_reading_id: int
    amount_due: float = Field(ge=0)
    due_date: date

    class Config:
        extra = "forbid"


class BillOut(BaseModel):
    id: int
    user_id: int
    meter_reading_id: int
    amount_due: float
    due_date: date

    class Config:
        from_attributes = True


class BillEnvelope(BaseModel):
    success: bool = True
    newBill: BillOut


class NotificationOut(BaseModel):
    id: int
    user_id: int
    message: str
    notification_date: datetime

    class Config:
        from_attributes = True


class SmsRequest(BaseModel):
    to: Optional[str] = None
    message: Optional[str] = None


class SmsResponse(BaseModel):
    success: bool = True
    message: str = "SMS sent successfully"
    data: Any = None


class BroadcastPayload(BaseModel):
    message: str
    data: dict
