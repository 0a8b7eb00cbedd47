from datetime import date, datetime
from typing import Annotated, Optional, List, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

UserType = Literal["landowner", "harvester"]
PropertyStatus = Literal["active", "inactive", "completed"]
Share = Annotated[int, Field(ge=0, le=100)]


class CamelModel(BaseModel):
    # wire format is camelCase; python attributes stay snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PatchModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# ---------- Users ----------
class RegisterUser(CamelModel):
    username: str = Field(..., min_length=3, max_length=64)
    email: EmailStr
    password: str = Field(..., min_length=6)
    user_type: UserType
    full_name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    bio: Optional[str] = None

class LoginRequest(CamelModel):
    email: str
    password: str

class UpdateUser(PatchModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=64)
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    bio: Optional[str] = None

class UserOut(CamelModel):
    id: int
    username: str
    email: str
    user_type: str
    full_name: str
    phone: Optional[str] = None
    bio: Optional[str] = None
    rating: float
    total_ratings: int
    created_at: datetime

class AuthResponse(CamelModel):
    user: UserOut
    token: str


# ---------- Properties ----------
class CreateProperty(CamelModel):
    title: str = Field(..., min_length=1)
    description: str
    fruit_type: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    access_instructions: Optional[str] = None
    harvest_start_date: date
    harvest_end_date: date
    owner_share: Optional[Share] = None
    harvester_share: Optional[Share] = None
    estimated_yield: float = Field(..., ge=0)
    yield_unit: str = Field(..., min_length=1)  # kg, lbs, baskets
    images: List[str] = []
    preferred_qualities: List[str] = []
    special_requirements: Optional[str] = None
    owner_id: Optional[int] = None

class UpdateProperty(PatchModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    fruit_type: Optional[str] = Field(default=None, min_length=1)
    address: Optional[str] = Field(default=None, min_length=1)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    access_instructions: Optional[str] = None
    harvest_start_date: Optional[date] = None
    harvest_end_date: Optional[date] = None
    owner_share: Optional[Share] = None
    harvester_share: Optional[Share] = None
    estimated_yield: Optional[float] = Field(default=None, ge=0)
    yield_unit: Optional[str] = Field(default=None, min_length=1)
    images: Optional[List[str]] = None
    preferred_qualities: Optional[List[str]] = None
    special_requirements: Optional[str] = None
    status: Optional[PropertyStatus] = None

class PropertyOut(CamelModel):
    id: int
    owner_id: int
    title: str
    description: str
    fruit_type: str
    address: str
    latitude: float
    longitude: float
    access_instructions: Optional[str] = None
    harvest_start_date: date
    harvest_end_date: date
    owner_share: int
    harvester_share: int
    estimated_yield: float
    yield_unit: str
    images: List[str] = []
    preferred_qualities: List[str] = []
    special_requirements: Optional[str] = None
    status: str
    created_at: datetime

class PropertySearch(BaseModel):
    fruit_type: Optional[str] = None
    location: Optional[str] = None
    radius: Optional[float] = None  # km
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# ---------- Applications ----------
class CreateApplication(CamelModel):
    property_id: int
    message: str = Field(..., min_length=1)
    preferred_dates: List[str] = []
    has_experience: bool = False
    has_equipment: bool = False
    is_flexible: bool = False
    harvester_id: Optional[int] = None

class UpdateApplication(PatchModel):
    status: Literal["accepted", "rejected"]
    # deal terms, only read when accepting
    start_date: Optional[date] = None
    end_date: Optional[date] = None

class ApplicationOut(CamelModel):
    id: int
    property_id: int
    harvester_id: int
    message: str
    preferred_dates: List[str] = []
    has_experience: bool
    has_equipment: bool
    is_flexible: bool
    status: str
    created_at: datetime


# ---------- Deals ----------
class CreateDeal(CamelModel):
    application_id: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    owner_share: Optional[Share] = None
    harvester_share: Optional[Share] = None
    # accepted for compatibility; must agree with the application
    property_id: Optional[int] = None
    owner_id: Optional[int] = None
    harvester_id: Optional[int] = None

class UpdateDeal(PatchModel):
    status: Optional[Literal["completed", "cancelled"]] = None
    completed_at: Optional[date] = None
    actual_yield: Optional[float] = Field(default=None, ge=0)
    owner_rating: Optional[int] = Field(default=None, ge=1, le=5)
    owner_review: Optional[str] = None
    harvester_rating: Optional[int] = Field(default=None, ge=1, le=5)
    harvester_review: Optional[str] = None

class RatingRequest(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = None

class DealOut(CamelModel):
    id: int
    property_id: int
    owner_id: int
    harvester_id: int
    application_id: int
    start_date: date
    end_date: date
    owner_share: int
    harvester_share: int
    actual_yield: Optional[float] = None
    status: str
    owner_rating: Optional[int] = None
    harvester_rating: Optional[int] = None
    owner_review: Optional[str] = None
    harvester_review: Optional[str] = None
    completed_at: Optional[date] = None
    created_at: datetime


# ---------- Messages ----------
class CreateMessage(CamelModel):
    deal_id: int
    content: str = Field(..., min_length=1)
    sender_id: Optional[int] = None

class MessageOut(CamelModel):
    id: int
    deal_id: int
    sender_id: int
    content: str
    created_at: datetime
