from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Float, Boolean, Date, DateTime, JSON, ForeignKey
from database import Base

USER_TYPES = ("landowner", "harvester")
PROPERTY_STATUSES = ("active", "inactive", "completed")
APPLICATION_STATUSES = ("pending", "accepted", "rejected")
DEAL_STATUSES = ("active", "completed", "cancelled")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    user_type: Mapped[str] = mapped_column(String(20))
    full_name: Mapped[str] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    total_ratings: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    properties: Mapped[list["Property"]] = relationship("Property", back_populates="owner")


class Property(Base):
    __tablename__ = "properties"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text)
    fruit_type: Mapped[str] = mapped_column(String(100))
    address: Mapped[str] = mapped_column(String(255))
    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)
    access_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    harvest_start_date: Mapped[date] = mapped_column(Date)
    harvest_end_date: Mapped[date] = mapped_column(Date)
    owner_share: Mapped[int] = mapped_column(Integer)
    harvester_share: Mapped[int] = mapped_column(Integer)
    estimated_yield: Mapped[float] = mapped_column(Float)
    yield_unit: Mapped[str] = mapped_column(String(20))
    images: Mapped[list] = mapped_column(JSON, default=list)
    preferred_qualities: Mapped[list] = mapped_column(JSON, default=list)
    special_requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    owner: Mapped[User] = relationship("User", back_populates="properties")
    applications: Mapped[list["Application"]] = relationship("Application", back_populates="property")


class Application(Base):
    __tablename__ = "applications"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), index=True)
    harvester_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)
    message: Mapped[str] = mapped_column(Text)
    preferred_dates: Mapped[list] = mapped_column(JSON, default=list)
    has_experience: Mapped[bool] = mapped_column(Boolean, default=False)
    has_equipment: Mapped[bool] = mapped_column(Boolean, default=False)
    is_flexible: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    property: Mapped[Property] = relationship("Property", back_populates="applications")


class Deal(Base):
    __tablename__ = "deals"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), index=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)
    harvester_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)
    # one application yields at most one deal
    application_id: Mapped[int] = mapped_column(Integer, ForeignKey("applications.id"), unique=True)
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    owner_share: Mapped[int] = mapped_column(Integer)
    harvester_share: Mapped[int] = mapped_column(Integer)
    actual_yield: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    owner_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    harvester_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    owner_review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    harvester_review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    messages: Mapped[list["Message"]] = relationship("Message", back_populates="deal", order_by="Message.id")

    def party_role(self, user_id: int) -> Optional[str]:
        if user_id == self.owner_id:
            return "owner"
        if user_id == self.harvester_id:
            return "harvester"
        return None


class Message(Base):
    __tablename__ = "messages"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    deal_id: Mapped[int] = mapped_column(Integer, ForeignKey("deals.id"), index=True)
    sender_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    deal: Mapped[Deal] = relationship("Deal", back_populates="messages")
