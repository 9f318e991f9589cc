# database.py
from datetime import datetime, timezone

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Float,
    Date,
    DateTime,
    ForeignKey,
)
from sqlalchemy.orm import sessionmaker, declarative_base, relationship

from config import settings

DATABASE_URL = settings.database_url
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


class Role(Base):
    __tablename__ = "roles"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)

    users = relationship("User", back_populates="role")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    purok = Column(String, nullable=True)

    role = relationship("Role", back_populates="users")
    meter_readings = relationship(
        "MeterReading", back_populates="user", cascade="all, delete-orphan"
    )
    bills = relationship("Bill", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )


class MeterReading(Base):
    __tablename__ = "meter_readings"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reading_value = Column(Float, nullable=False)
    image_url = Column(String, nullable=True)
    reading_date = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="meter_readings")
    bill = relationship(
        "Bill", back_populates="meter_reading", uselist=False, cascade="all, delete-orphan"
    )


class Bill(Base):
    __tablename__ = "bills"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # a reading justifies at most one bill
    meter_reading_id = Column(
        Integer, ForeignKey("meter_readings.id"), nullable=False, unique=True
    )
    amount_due = Column(Float, nullable=False)
    due_date = Column(Date, nullable=False)

    user = relationship("User", back_populates="bills")
    meter_reading = relationship("MeterReading", back_populates="bill")


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    message = Column(String, nullable=False)
    notification_date = Column(DateTime, nullable=False, default=utcnow, index=True)

    user = relationship("User", back_populates="notifications")


def init_db(role_names=None):
    """Create missing tables and seed the configured roles."""
    Base.metadata.create_all(bind=engine)
    role_names = settings.default_roles if role_names is None else role_names
    with SessionLocal() as db:
        existing = {name for (name,) in db.query(Role.name).all()}
        for name in role_names:
            if name not in existing:
                db.add(Role(name=name))
        db.commit()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
