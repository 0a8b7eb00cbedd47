"""Marketplace rules: accounts, listings, applications, deals, ratings, messages.

Routes hand the authenticated actor and a validated request schema to these
functions; they enforce ownership, state transitions and the share rule, and
raise ``errors`` exceptions the API maps to HTTP statuses. Workflows that write
more than one record run inside ``atomic`` so they land together or not at all.
"""
import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import IntegrityError

from errors import Conflict, InvalidTransition, NotFound, PermissionDenied, ValidationFailed, AuthenticationFailed
from models import User, Property, Application, Deal, Message, utcnow
from schemas import (
    RegisterUser, UpdateUser, CreateProperty, UpdateProperty,
    CreateApplication, UpdateApplication, CreateDeal, UpdateDeal,
)
from security import hash_password, verify_password
from storage import Storage
from utils import TOTAL_SHARE, complete_shares

logger = logging.getLogger(__name__)

APPLICATION_TRANSITIONS = {
    "pending": {"accepted", "rejected"},
}
DEAL_TRANSITIONS = {
    "active": {"completed", "cancelled"},
}

# patch fields that may be cleared with an explicit null
NULLABLE_USER_FIELDS = {"phone", "bio"}
NULLABLE_PROPERTY_FIELDS = {"access_instructions", "special_requirements"}


@contextmanager
def atomic(storage: Storage):
    try:
        yield
        storage.commit()
    except Exception:
        storage.rollback()
        raise


# ---------- Shared rules ----------
def resolve_shares(owner_share: Optional[int], harvester_share: Optional[int]) -> Tuple[int, int]:
    if owner_share is None and harvester_share is None:
        raise ValidationFailed("ownerShare or harvesterShare is required")
    owner_share, harvester_share = complete_shares(owner_share, harvester_share)
    for name, value in (("ownerShare", owner_share), ("harvesterShare", harvester_share)):
        if not 0 <= value <= TOTAL_SHARE:
            raise ValidationFailed(f"{name} must be between 0 and {TOTAL_SHARE}")
    if owner_share + harvester_share != TOTAL_SHARE:
        raise ValidationFailed(f"ownerShare and harvesterShare must sum to {TOTAL_SHARE}")
    return owner_share, harvester_share


def patch_updates(data: BaseModel, nullable=frozenset()) -> Dict[str, Any]:
    """Fields the client sent, refusing nulls for columns that cannot be empty."""
    updates = data.model_dump(exclude_unset=True)
    for key, value in updates.items():
        if value is None and key not in nullable:
            raise ValidationFailed(f"{to_camel(key)} cannot be null")
    return updates


def check_window(start: date, end: date, label: str = "harvest") -> None:
    if start > end:
        raise ValidationFailed(f"{label} start date must not be after its end date")


def check_claimed_actor(actor: User, claimed_id: Optional[int], field: str) -> None:
    """Bodies may still name the actor; it has to be the authenticated user."""
    if claimed_id is not None and claimed_id != actor.id:
        raise PermissionDenied(f"{field} does not match the authenticated user")


def require_party(actor: User, deal: Deal) -> str:
    role = deal.party_role(actor.id)
    if role is None:
        raise PermissionDenied("Only the owner or harvester of this deal may do that")
    return role


# ---------- Accounts ----------
def register_user(storage: Storage, data: RegisterUser) -> User:
    if storage.get_user_by_email(data.email):
        raise Conflict("User already exists with this email")
    if storage.get_user_by_username(data.username):
        raise Conflict("Username is already taken")
    fields = data.model_dump(exclude={"password"})
    try:
        user = storage.create_user(password_hash=hash_password(data.password), **fields)
    except IntegrityError:
        # lost a race with a concurrent registration
        storage.rollback()
        raise Conflict("User already exists with this email or username")
    logger.info("registered %s user %s", user.user_type, user.id)
    return user


def authenticate(storage: Storage, email: str, password: str) -> User:
    user = storage.get_user_by_email(email)
    if user is None or not verify_password(user.password_hash, password):
        logger.warning("failed login for %s", email)
        raise AuthenticationFailed("Invalid credentials")
    return user


def update_profile(storage: Storage, actor: User, user: User, data: UpdateUser) -> User:
    if actor.id != user.id:
        raise PermissionDenied("You can only edit your own profile")
    updates = patch_updates(data, NULLABLE_USER_FIELDS)
    if updates.get("email") and updates["email"] != user.email:
        if storage.get_user_by_email(updates["email"]):
            raise Conflict("User already exists with this email")
    if updates.get("username") and updates["username"] != user.username:
        if storage.get_user_by_username(updates["username"]):
            raise Conflict("Username is already taken")
    try:
        return storage.update_user(user.id, updates)
    except IntegrityError:
        storage.rollback()
        raise Conflict("User already exists with this email or username")


# ---------- Properties ----------
def create_property(storage: Storage, owner: User, data: CreateProperty) -> Property:
    check_claimed_actor(owner, data.owner_id, "ownerId")
    if owner.user_type != "landowner":
        raise PermissionDenied("Only landowners can list properties")
    check_window(data.harvest_start_date, data.harvest_end_date)
    owner_share, harvester_share = resolve_shares(data.owner_share, data.harvester_share)
    fields = data.model_dump(exclude={"owner_id", "owner_share", "harvester_share"})
    prop = storage.create_property(owner_id=owner.id, owner_share=owner_share,
                                   harvester_share=harvester_share, **fields)
    logger.info("property %s listed by %s", prop.id, owner.id)
    return prop


def update_property(storage: Storage, actor: User, prop: Property, data: UpdateProperty) -> Property:
    if prop.owner_id != actor.id:
        raise PermissionDenied("Only the owner can edit this property")
    updates = patch_updates(data, NULLABLE_PROPERTY_FIELDS)
    if not updates:
        return prop

    if "owner_share" in updates or "harvester_share" in updates:
        owner_share, harvester_share = resolve_shares(updates.get("owner_share"), updates.get("harvester_share"))
        updates["owner_share"], updates["harvester_share"] = owner_share, harvester_share

    check_window(updates.get("harvest_start_date", prop.harvest_start_date),
                 updates.get("harvest_end_date", prop.harvest_end_date))

    if updates.get("status") and updates["status"] != prop.status:
        logger.info("property %s status %s -> %s", prop.id, prop.status, updates["status"])
    return storage.update_property(prop.id, updates)


# ---------- Applications ----------
def submit_application(storage: Storage, harvester: User, data: CreateApplication) -> Application:
    check_claimed_actor(harvester, data.harvester_id, "harvesterId")
    if harvester.user_type != "harvester":
        raise PermissionDenied("Only harvesters can apply")
    prop = storage.get_property(data.property_id)
    if prop is None:
        raise NotFound("Property not found")
    if prop.status != "active":
        raise ValidationFailed("Property is not accepting applications")
    if prop.owner_id == harvester.id:
        raise ValidationFailed("You cannot apply to your own property")
    fields = data.model_dump(exclude={"harvester_id"})
    application = storage.create_application(harvester_id=harvester.id, **fields)
    logger.info("application %s submitted for property %s", application.id, prop.id)
    return application


def decide_application(storage: Storage, actor: User, application: Application,
                       data: UpdateApplication) -> Tuple[Application, Optional[Deal]]:
    """Accept or reject a pending application. Accepting also opens the deal."""
    if application.property.owner_id != actor.id:
        raise PermissionDenied("Only the property owner can decide on applications")
    if data.status == "accepted":
        deal = promote_application(storage, actor, application,
                                   start_date=data.start_date, end_date=data.end_date)
        return application, deal

    if data.status not in APPLICATION_TRANSITIONS.get(application.status, set()):
        raise InvalidTransition(f"Cannot mark a {application.status} application as {data.status}")
    application = storage.update_application(application.id, {"status": data.status})
    logger.info("application %s rejected", application.id)
    return application, None


def promote_application(storage: Storage, actor: User, application: Application,
                        start_date: Optional[date] = None, end_date: Optional[date] = None,
                        owner_share: Optional[int] = None,
                        harvester_share: Optional[int] = None) -> Deal:
    prop = application.property
    if prop.owner_id != actor.id:
        raise PermissionDenied("Only the property owner can accept applications")
    if application.status not in ("pending", "accepted"):
        raise InvalidTransition(f"Cannot accept a {application.status} application")
    if storage.get_deal_by_application(application.id) is not None:
        raise Conflict("A deal already exists for this application")

    start_date = start_date or prop.harvest_start_date
    end_date = end_date or prop.harvest_end_date
    check_window(start_date, end_date, "deal")
    if owner_share is None and harvester_share is None:
        owner_share, harvester_share = prop.owner_share, prop.harvester_share
    owner_share, harvester_share = resolve_shares(owner_share, harvester_share)

    with atomic(storage):
        storage.update_application(application.id, {"status": "accepted"}, commit=False)
        deal = storage.create_deal(
            commit=False,
            property_id=prop.id,
            owner_id=prop.owner_id,
            harvester_id=application.harvester_id,
            application_id=application.id,
            start_date=start_date,
            end_date=end_date,
            owner_share=owner_share,
            harvester_share=harvester_share,
        )
    logger.info("application %s accepted, deal %s opened", application.id, deal.id)
    return deal


def create_deal(storage: Storage, actor: User, data: CreateDeal) -> Deal:
    application = storage.get_application(data.application_id)
    if application is None:
        raise NotFound("Application not found")
    expected = {
        "propertyId": (data.property_id, application.property_id),
        "ownerId": (data.owner_id, application.property.owner_id),
        "harvesterId": (data.harvester_id, application.harvester_id),
    }
    for name, (given, actual) in expected.items():
        if given is not None and given != actual:
            raise ValidationFailed(f"{name} does not match the application")
    return promote_application(storage, actor, application,
                               start_date=data.start_date, end_date=data.end_date,
                               owner_share=data.owner_share, harvester_share=data.harvester_share)


# ---------- Deals ----------
def _apply_rating(storage: Storage, deal: Deal, role: str, rating: int, review: Optional[str]) -> None:
    if deal.status != "completed":
        raise InvalidTransition("Deals can only be rated once completed")
    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationFailed("rating must be an integer between 1 and 5")
    if getattr(deal, f"{role}_rating") is not None:
        raise Conflict(f"The {role} has already rated this deal")

    # the owner rates the harvester and vice versa
    ratee_id = deal.harvester_id if role == "owner" else deal.owner_id
    ratee = storage.get_user(ratee_id)
    total = ratee.total_ratings or 0
    average = ((ratee.rating or 0) * total + rating) / (total + 1)

    storage.update_deal(deal.id, {f"{role}_rating": rating, f"{role}_review": review}, commit=False)
    storage.update_user(ratee.id, {"rating": average, "total_ratings": total + 1}, commit=False)
    logger.info("deal %s rated %d by %s", deal.id, rating, role)


def submit_rating(storage: Storage, actor: User, deal: Deal, rating: int, review: Optional[str] = None) -> Deal:
    role = require_party(actor, deal)
    with atomic(storage):
        _apply_rating(storage, deal, role, rating, review)
    return deal


def update_deal(storage: Storage, actor: User, deal: Deal, data: UpdateDeal) -> Deal:
    role = require_party(actor, deal)
    updates = data.model_dump(exclude_unset=True)

    ratings = {}
    for side in ("owner", "harvester"):
        rating_key, review_key = f"{side}_rating", f"{side}_review"
        if rating_key not in updates and review_key not in updates:
            continue
        if side != role:
            raise PermissionDenied(f"Only the {side} of this deal can set {side} ratings")
        if updates.get(rating_key) is None:
            raise ValidationFailed(f"{side}Rating is required with a review")
        ratings[side] = (updates.pop(rating_key), updates.pop(review_key, None))

    with atomic(storage):
        status = updates.pop("status", None)
        if status is not None:
            if status not in DEAL_TRANSITIONS.get(deal.status, set()):
                raise InvalidTransition(f"Cannot move a {deal.status} deal to {status}")
            changes = {"status": status}
            if status == "completed":
                changes["completed_at"] = updates.pop("completed_at", None) or utcnow().date()
            storage.update_deal(deal.id, changes, commit=False)
            logger.info("deal %s %s by %s", deal.id, status, role)

        if "completed_at" in updates and deal.status != "completed":
            raise ValidationFailed("completedAt can only be set on a completed deal")
        if updates:
            storage.update_deal(deal.id, updates, commit=False)

        for side, (rating, review) in ratings.items():
            _apply_rating(storage, deal, side, rating, review)
    return deal


# ---------- Messages ----------
def post_message(storage: Storage, actor: User, deal: Deal, content: str,
                 sender_id: Optional[int] = None) -> Message:
    check_claimed_actor(actor, sender_id, "senderId")
    require_party(actor, deal)
    if not content or not content.strip():
        raise ValidationFailed("Message content is required")
    return storage.create_message(deal_id=deal.id, sender_id=actor.id, content=content)


def conversation(storage: Storage, actor: User, deal: Deal):
    require_party(actor, deal)
    return storage.list_messages_by_deal(deal.id)
