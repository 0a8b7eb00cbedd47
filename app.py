import logging
from typing import List, Optional
from datetime import date

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException

from sqlalchemy import text
from sqlalchemy.orm import Session

from config import get_config
from database import SessionLocal, init_db
from errors import HarvestShareError, AuthenticationFailed, NotFound, ValidationFailed
from models import User
from schemas import (
    RegisterUser, LoginRequest, UpdateUser, UserOut, AuthResponse,
    CreateProperty, UpdateProperty, PropertyOut, PropertySearch,
    CreateApplication, UpdateApplication, ApplicationOut,
    CreateDeal, UpdateDeal, RatingRequest, DealOut,
    CreateMessage, MessageOut,
)
from security import issue_token, decode_token
from storage import Storage
import lifecycle

# ---------- Config ----------
settings = get_config()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="HarvestShare", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- DB ----------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_storage(db: Session = Depends(get_db)) -> Storage:
    return Storage(db)

@app.on_event("startup")
def on_startup():
    init_db()

# ---------- Auth ----------
bearer = HTTPBearer(auto_error=False)

def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    storage: Storage = Depends(get_storage),
) -> User:
    if creds is None:
        raise AuthenticationFailed("Authentication required")
    user = storage.get_user(decode_token(creds.credentials))
    if user is None:
        raise AuthenticationFailed("Invalid token")
    return user

# ---------- Errors ----------
@app.exception_handler(HarvestShareError)
async def handle_domain_error(request: Request, exc: HarvestShareError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request data", "errors": jsonable_encoder(exc.errors())},
    )

@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail},
                        headers=getattr(exc, "headers", None))

@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})

# ---------- Helpers ----------
def _load(getter, id: int, label: str):
    obj = getter(id)
    if obj is None:
        raise NotFound(f"{label} not found")
    return obj

# ---------- APIs: accounts ----------
@app.post("/api/auth/register", response_model=AuthResponse)
def register(body: RegisterUser, storage: Storage = Depends(get_storage)):
    user = lifecycle.register_user(storage, body)
    return AuthResponse(user=UserOut.model_validate(user), token=issue_token(user.id))

@app.post("/api/auth/login", response_model=AuthResponse)
def login(body: LoginRequest, storage: Storage = Depends(get_storage)):
    user = lifecycle.authenticate(storage, body.email, body.password)
    return AuthResponse(user=UserOut.model_validate(user), token=issue_token(user.id))

@app.get("/api/auth/me", response_model=UserOut)
def me(current: User = Depends(get_current_user)):
    return current

@app.get("/api/users/{user_id}", response_model=UserOut)
def get_user(user_id: int, storage: Storage = Depends(get_storage)):
    return _load(storage.get_user, user_id, "User")

@app.patch("/api/users/{user_id}", response_model=UserOut)
def update_user(user_id: int, body: UpdateUser,
                storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    user = _load(storage.get_user, user_id, "User")
    return lifecycle.update_profile(storage, current, user, body)

# ---------- APIs: properties ----------
SEARCH_PARAMS = ("fruitType", "location", "radius", "lat", "lng", "startDate", "endDate")

@app.get("/api/properties", response_model=List[PropertyOut])
def list_properties(
    request: Request,
    fruit_type: Optional[str] = Query(None, alias="fruitType"),
    location: Optional[str] = Query(None, description="substring of the address"),
    radius: Optional[float] = Query(None, gt=0, description="km around lat/lng"),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    storage: Storage = Depends(get_storage),
):
    if not any(p in request.query_params for p in SEARCH_PARAMS):
        return storage.list_active_properties()
    if radius is not None and (lat is None or lng is None):
        raise ValidationFailed("radius needs lat and lng")
    filters = PropertySearch(
        fruit_type=fruit_type,
        location=location,
        radius=radius,
        latitude=lat,
        longitude=lng,
        start_date=start_date,
        end_date=end_date,
    )
    return storage.search_properties(filters)

@app.get("/api/properties/{property_id}", response_model=PropertyOut)
def get_property(property_id: int, storage: Storage = Depends(get_storage)):
    return _load(storage.get_property, property_id, "Property")

@app.post("/api/properties", response_model=PropertyOut, status_code=201)
def create_property(body: CreateProperty,
                    storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    return lifecycle.create_property(storage, current, body)

@app.patch("/api/properties/{property_id}", response_model=PropertyOut)
def update_property(property_id: int, body: UpdateProperty,
                    storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    prop = _load(storage.get_property, property_id, "Property")
    return lifecycle.update_property(storage, current, prop, body)

@app.get("/api/users/{user_id}/properties", response_model=List[PropertyOut])
def user_properties(user_id: int, storage: Storage = Depends(get_storage)):
    return storage.list_properties_by_owner(user_id)

# ---------- APIs: applications ----------
@app.post("/api/applications", response_model=ApplicationOut, status_code=201)
def create_application(body: CreateApplication,
                       storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    return lifecycle.submit_application(storage, current, body)

@app.get("/api/properties/{property_id}/applications", response_model=List[ApplicationOut])
def property_applications(property_id: int, storage: Storage = Depends(get_storage)):
    return storage.list_applications_by_property(property_id)

@app.get("/api/users/{user_id}/applications", response_model=List[ApplicationOut])
def user_applications(user_id: int, storage: Storage = Depends(get_storage)):
    return storage.list_applications_by_harvester(user_id)

@app.patch("/api/applications/{application_id}", response_model=ApplicationOut)
def update_application(application_id: int, body: UpdateApplication,
                       storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    application = _load(storage.get_application, application_id, "Application")
    application, _ = lifecycle.decide_application(storage, current, application, body)
    return application

# ---------- APIs: deals ----------
def _party_deal(deal_id: int, storage: Storage, current: User):
    deal = _load(storage.get_deal, deal_id, "Deal")
    lifecycle.require_party(current, deal)
    return deal

@app.post("/api/deals", response_model=DealOut, status_code=201)
def create_deal(body: CreateDeal,
                storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    return lifecycle.create_deal(storage, current, body)

@app.get("/api/deals/{deal_id}", response_model=DealOut)
def get_deal(deal_id: int, storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    return _party_deal(deal_id, storage, current)

@app.get("/api/users/{user_id}/deals", response_model=List[DealOut])
def user_deals(user_id: int, storage: Storage = Depends(get_storage)):
    return storage.list_deals_by_user(user_id)

@app.patch("/api/deals/{deal_id}", response_model=DealOut)
def update_deal(deal_id: int, body: UpdateDeal,
                storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    deal = _load(storage.get_deal, deal_id, "Deal")
    return lifecycle.update_deal(storage, current, deal, body)

@app.post("/api/deals/{deal_id}/rating", response_model=DealOut)
def rate_deal(deal_id: int, body: RatingRequest,
              storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    deal = _load(storage.get_deal, deal_id, "Deal")
    return lifecycle.submit_rating(storage, current, deal, body.rating, body.review)

# ---------- APIs: messages ----------
@app.get("/api/deals/{deal_id}/messages", response_model=List[MessageOut])
def deal_messages(deal_id: int, storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    deal = _load(storage.get_deal, deal_id, "Deal")
    return lifecycle.conversation(storage, current, deal)

@app.post("/api/messages", response_model=MessageOut, status_code=201)
def send_message(body: CreateMessage,
                 storage: Storage = Depends(get_storage), current: User = Depends(get_current_user)):
    deal = _load(storage.get_deal, body.deal_id, "Deal")
    return lifecycle.post_message(storage, current, deal, body.content, sender_id=body.sender_id)

# ---------- Health ----------
@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("database check failed: %s", e)
        raise HTTPException(status_code=503, detail="database unavailable")
    return {"status": "ok"}


if __name__ == "__main__":
    import os
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
