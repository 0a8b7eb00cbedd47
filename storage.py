"""Domain repository: typed access to users, properties, applications, deals and messages.

Every create/update commits by default. Pass ``commit=False`` to stage the
write in the current transaction and finish it with ``commit()``/``rollback()``.
"""
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from sqlalchemy import func, select, or_
from sqlalchemy.orm import Session

from database import Base
from models import User, Property, Application, Deal, Message
from schemas import PropertySearch
from utils import contains_ci, haversine_km, windows_overlap

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Base)


class Storage:
    def __init__(self, db: Session):
        self.db = db

    # ---------- Transaction control ----------
    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    # ---------- Generic helpers ----------
    def _get(self, model: Type[T], id: int) -> Optional[T]:
        return self.db.get(model, id)

    def _list(self, model: Type[T], *criteria) -> List[T]:
        return list(self.db.scalars(select(model).where(*criteria).order_by(model.id.asc())).all())

    def _create(self, model: Type[T], fields: Dict[str, Any], commit: bool) -> T:
        obj = model(**fields)
        self.db.add(obj)
        if commit:
            self.db.commit()
            self.db.refresh(obj)
        else:
            self.db.flush()
        return obj

    def _update(self, model: Type[T], id: int, updates: Dict[str, Any], commit: bool) -> Optional[T]:
        obj = self._get(model, id)
        if obj is None:
            return None
        for key, value in updates.items():
            if not hasattr(model, key):
                raise AttributeError(f"{model.__name__} has no field {key!r}")
            setattr(obj, key, value)
        if commit:
            self.db.commit()
            self.db.refresh(obj)
        else:
            self.db.flush()
        return obj

    # ---------- Users ----------
    def get_user(self, id: int) -> Optional[User]:
        return self._get(User, id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        # addresses compare case-insensitively; stored as registered
        return self.db.scalar(select(User).where(func.lower(User.email) == email.lower()))

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.db.scalar(select(User).where(User.username == username))

    def create_user(self, commit: bool = True, **fields) -> User:
        return self._create(User, fields, commit)

    def update_user(self, id: int, updates: Dict[str, Any], commit: bool = True) -> Optional[User]:
        return self._update(User, id, updates, commit)

    # ---------- Properties ----------
    def get_property(self, id: int) -> Optional[Property]:
        return self._get(Property, id)

    def list_properties_by_owner(self, owner_id: int) -> List[Property]:
        return self._list(Property, Property.owner_id == owner_id)

    def list_active_properties(self) -> List[Property]:
        return self._list(Property, Property.status == "active")

    def search_properties(self, filters: PropertySearch) -> List[Property]:
        results = self.list_active_properties()

        if filters.fruit_type and filters.fruit_type.lower() != "all":
            results = [p for p in results if contains_ci(p.fruit_type, filters.fruit_type)]

        if filters.location:
            results = [p for p in results if contains_ci(p.address, filters.location)]

        if filters.start_date or filters.end_date:
            results = [p for p in results
                       if windows_overlap(p.harvest_start_date, p.harvest_end_date,
                                          filters.start_date, filters.end_date)]

        if filters.radius is not None:
            results = [p for p in results
                       if haversine_km(filters.latitude, filters.longitude,
                                       p.latitude, p.longitude) <= filters.radius]

        logger.debug("property search %s matched %d", filters.model_dump(exclude_none=True), len(results))
        return results

    def create_property(self, commit: bool = True, **fields) -> Property:
        return self._create(Property, fields, commit)

    def update_property(self, id: int, updates: Dict[str, Any], commit: bool = True) -> Optional[Property]:
        return self._update(Property, id, updates, commit)

    # ---------- Applications ----------
    def get_application(self, id: int) -> Optional[Application]:
        return self._get(Application, id)

    def list_applications_by_property(self, property_id: int) -> List[Application]:
        return self._list(Application, Application.property_id == property_id)

    def list_applications_by_harvester(self, harvester_id: int) -> List[Application]:
        return self._list(Application, Application.harvester_id == harvester_id)

    def create_application(self, commit: bool = True, **fields) -> Application:
        return self._create(Application, fields, commit)

    def update_application(self, id: int, updates: Dict[str, Any], commit: bool = True) -> Optional[Application]:
        return self._update(Application, id, updates, commit)

    # ---------- Deals ----------
    def get_deal(self, id: int) -> Optional[Deal]:
        return self._get(Deal, id)

    def get_deal_by_application(self, application_id: int) -> Optional[Deal]:
        return self.db.scalar(select(Deal).where(Deal.application_id == application_id))

    def list_deals_by_user(self, user_id: int) -> List[Deal]:
        return self._list(Deal, or_(Deal.owner_id == user_id, Deal.harvester_id == user_id))

    def create_deal(self, commit: bool = True, **fields) -> Deal:
        return self._create(Deal, fields, commit)

    def update_deal(self, id: int, updates: Dict[str, Any], commit: bool = True) -> Optional[Deal]:
        return self._update(Deal, id, updates, commit)

    # ---------- Messages ----------
    def list_messages_by_deal(self, deal_id: int) -> List[Message]:
        return self._list(Message, Message.deal_id == deal_id)

    def create_message(self, commit: bool = True, **fields) -> Message:
        return self._create(Message, fields, commit)
