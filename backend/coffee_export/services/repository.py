"""SQL-backed repositories for the entity records.

Each repository stores the record's JSON form plus a handful of indexed
columns, enforces optimistic concurrency through ``VersionMixin`` and never
physically deletes rows.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coffee_export.core.clock import Clock, resolve_clock
from coffee_export.core.exceptions import EntityValidationError, FieldError, VersionConflictError
from coffee_export.models.records import (
    BusinessServiceRow,
    ClientCompanyRow,
    CoffeeProductRow,
    OrderRow,
    RFQRow,
)
from coffee_export.schemas.base import EntityRecord
from coffee_export.schemas.business_service import BusinessService
from coffee_export.schemas.client_company import ClientCompany
from coffee_export.schemas.coffee_product import CoffeeProduct
from coffee_export.schemas.order import Order
from coffee_export.schemas.pagination import SearchCriteria, SearchResult, SortOrder, paginate_query
from coffee_export.schemas.rfq import RFQ

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=EntityRecord)

# Identity and audit keys a partial update may not rewrite
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "created_by"})


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _search_blob(*parts: Optional[str]) -> str:
    return " ".join(p for p in parts if p).lower()


class DuplicateRecordError(Exception):
    """Raised when creating a record whose id or business code already exists."""

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} '{key}' already exists")


class SqlRepository(Generic[E]):
    """Generic repository; subclasses describe their row type and indexed columns."""

    entity_cls: Type[E]
    row_cls: Any
    code_column: str
    date_column: str = "updated_at"
    sortable = ("created_at", "updated_at")

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = resolve_clock(clock)
        # Version of each record as last read or written through this repository
        self._seen_versions: Dict[str, int] = {}

    # Mapping

    def index_columns(self, entity: E) -> Dict[str, Any]:
        raise NotImplementedError

    def _to_entity(self, row) -> E:
        self._seen_versions[row.id] = row.version
        return self.entity_cls.from_dict(row.payload)

    def _apply(self, row, entity: E) -> None:
        row.payload = entity.to_dict()
        row.created_at = _utc(entity.created_at)
        row.updated_at = _utc(entity.updated_at)
        for column, value in self.index_columns(entity).items():
            setattr(row, column, _utc(value) if isinstance(value, datetime) else value)

    def _live(self):
        return self.db.query(self.row_cls).filter(self.row_cls.not_deleted())

    def _row(self, record_id: str, for_update: bool = False):
        query = self._live().filter(self.row_cls.id == record_id)
        if for_update:
            query = query.populate_existing().with_for_update()
        return query.first()

    # Reads

    def find_by_id(self, record_id: str) -> Optional[E]:
        row = self._row(record_id)
        return self._to_entity(row) if row is not None else None

    def find_by_code(self, code: str) -> Optional[E]:
        column = getattr(self.row_cls, self.code_column)
        row = self._live().filter(column == code).first()
        return self._to_entity(row) if row is not None else None

    def find_all(self) -> List[E]:
        rows = self._live().order_by(self.row_cls.created_at).all()
        return [self._to_entity(row) for row in rows]

    def get_version(self, record_id: str) -> Optional[int]:
        row = self._row(record_id)
        return row.version if row is not None else None

    def search(self, criteria: SearchCriteria) -> SearchResult[E]:
        cls = self.row_cls
        query = self._live()
        if criteria.status:
            query = query.filter(cls.status.in_(criteria.status))
        if criteria.kind:
            query = query.filter(cls.kind.in_(criteria.kind))
        if criteria.client_id and hasattr(cls, "client_id"):
            query = query.filter(cls.client_id == criteria.client_id)
        date_col = getattr(cls, self.date_column)
        if criteria.date_from:
            query = query.filter(date_col >= _utc(criteria.date_from))
        if criteria.date_to:
            query = query.filter(date_col <= _utc(criteria.date_to))
        if criteria.text:
            terms = criteria.text.lower().split()
            query = query.filter(*[cls.search_text.contains(term) for term in terms])

        sort_key = criteria.sort_by if criteria.sort_by in self.sortable else self.date_column
        sort_col = getattr(cls, sort_key)
        query = query.order_by(sort_col.asc() if criteria.sort_order == SortOrder.ASC else sort_col.desc(), cls.id)

        rows, total = paginate_query(query, criteria)
        return SearchResult.create([self._to_entity(r) for r in rows], total, criteria)

    # Writes

    def _commit(self, code: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(f"Integrity error writing {self.entity_cls.entity_name} {code}: {exc.orig}")
            raise DuplicateRecordError(self.entity_cls.entity_name, code) from exc

    def create(self, entity: E) -> E:
        code = self.index_columns(entity)[self.code_column]
        code_col = getattr(self.row_cls, self.code_column)
        clash = (
            self.db.query(self.row_cls)
            .filter(or_(self.row_cls.id == entity.id, code_col == code))
            .first()
        )
        if clash is not None:
            raise DuplicateRecordError(self.entity_cls.entity_name, code)

        row = self.row_cls(id=entity.id, version=1)
        self._apply(row, entity)
        self.db.add(row)
        self._commit(code)
        self._seen_versions[entity.id] = 1
        logger.info(f"Created {self.entity_cls.entity_name} {entity.id} ({code})")
        return entity

    def save(self, entity: E, expected_version: Optional[int] = None) -> Optional[E]:
        """Persist a new version of an existing record.

        Without ``expected_version`` the write is checked against the version
        this repository last read the record at. Returns None when the record
        does not exist; raises ``VersionConflictError`` when the row has moved
        on and ``DuplicateRecordError`` when the business code is taken.
        """
        row = self._row(entity.id, for_update=True)
        if row is None:
            return None
        if expected_version is None:
            expected_version = self._seen_versions.get(entity.id)
        try:
            row.check_version(self.entity_cls.entity_name, expected_version)
        except VersionConflictError:
            self.db.rollback()
            logger.warning(
                f"Version conflict on {self.entity_cls.entity_name} {entity.id}: "
                f"expected {expected_version}, current {row.version}"
            )
            raise
        self._apply(row, entity)
        row.increment_version()
        version = row.version
        self._commit(self.index_columns(entity)[self.code_column])
        self._seen_versions[entity.id] = version
        return entity

    def update(self, record_id: str, partial: Dict[str, Any], expected_version: Optional[int] = None) -> Optional[E]:
        """Merge ``partial`` into the stored record, re-validating the result."""
        frozen = sorted((IMMUTABLE_FIELDS | {self.code_column}) & partial.keys())
        if frozen:
            raise EntityValidationError(
                self.entity_cls.entity_name,
                [FieldError(key, "cannot be changed after creation", "immutable") for key in frozen],
            )
        current = self.find_by_id(record_id)
        if current is None:
            return None
        updated = current.touched(self.clock, **partial)
        return self.save(updated, expected_version)

    def delete(self, record_id: str) -> bool:
        row = self._row(record_id)
        if row is None:
            return False
        row.soft_delete(self.clock.now())
        row.increment_version()
        self.db.commit()
        logger.info(f"Soft-deleted {self.entity_cls.entity_name} {record_id}")
        return True

    def restore(self, record_id: str) -> Optional[E]:
        """Un-delete a soft-deleted record. None when no deleted record has that id."""
        row = (
            self.db.query(self.row_cls)
            .filter(self.row_cls.id == record_id, self.row_cls.is_deleted.is_(True))
            .first()
        )
        if row is None:
            return None
        row.restore()
        row.increment_version()
        self.db.commit()
        logger.info(f"Restored {self.entity_cls.entity_name} {record_id}")
        return self._to_entity(row)


class CoffeeProductRepository(SqlRepository[CoffeeProduct]):
    entity_cls = CoffeeProduct
    row_cls = CoffeeProductRow
    code_column = "sku"
    sortable = ("created_at", "updated_at", "sort_order", "base_price", "sku")

    def index_columns(self, entity: CoffeeProduct) -> Dict[str, Any]:
        return {
            "sku": entity.sku,
            "status": "ACTIVE" if entity.is_active else "INACTIVE",
            "kind": entity.type.value,
            "grade": entity.grade.value,
            "is_featured": entity.is_featured,
            "base_price": entity.pricing.base_price,
            "sort_order": entity.sort_order,
            "search_text": _search_blob(
                entity.sku, entity.name.en, entity.origin.region, entity.origin.province, *entity.keywords
            ),
        }


class BusinessServiceRepository(SqlRepository[BusinessService]):
    entity_cls = BusinessService
    row_cls = BusinessServiceRow
    code_column = "service_code"
    sortable = ("created_at", "updated_at", "sort_order", "service_code")

    def index_columns(self, entity: BusinessService) -> Dict[str, Any]:
        return {
            "service_code": entity.service_code,
            "status": "ACTIVE" if entity.is_active else "INACTIVE",
            "kind": entity.type.value,
            "category": entity.category.value,
            "sort_order": entity.sort_order,
            "search_text": _search_blob(entity.service_code, entity.name.en, *entity.keywords),
        }


class ClientCompanyRepository(SqlRepository[ClientCompany]):
    entity_cls = ClientCompany
    row_cls = ClientCompanyRow
    code_column = "company_code"
    sortable = ("created_at", "updated_at", "legal_name", "next_follow_up_date")

    def index_columns(self, entity: ClientCompany) -> Dict[str, Any]:
        return {
            "company_code": entity.company_code,
            "legal_name": entity.legal_name,
            "status": entity.status.value,
            "kind": entity.type.value,
            "relationship_status": entity.relationship_status.value,
            "risk_level": entity.risk_level.value,
            "next_follow_up_date": entity.next_follow_up_date,
            "search_text": _search_blob(
                entity.company_code,
                entity.legal_name,
                entity.trading_name,
                *[c.email for c in entity.contacts],
            ),
        }


class RFQRepository(SqlRepository[RFQ]):
    entity_cls = RFQ
    row_cls = RFQRow
    code_column = "rfq_number"
    date_column = "submitted_at"
    sortable = ("created_at", "updated_at", "submitted_at", "expires_at", "priority")

    def index_columns(self, entity: RFQ) -> Dict[str, Any]:
        info = entity.company_info
        return {
            "rfq_number": entity.rfq_number,
            "status": entity.status.value,
            "kind": entity.product_requirements.coffee_type.value,
            "priority": entity.priority.value,
            "client_id": entity.client_id,
            "assigned_to": entity.assigned_to,
            "submitted_at": entity.submitted_at,
            "expires_at": entity.expires_at,
            "search_text": _search_blob(
                entity.rfq_number, info.company_name, info.contact_person, info.email, info.address.country
            ),
        }

    def find_expirable(self, now: datetime) -> List[RFQ]:
        """Non-terminal RFQs whose ``expires_at`` has passed."""
        rows = (
            self._live()
            .filter(RFQRow.expires_at.isnot(None))
            .filter(RFQRow.expires_at < _utc(now))
            .filter(RFQRow.status.notin_(["ACCEPTED", "REJECTED", "EXPIRED"]))
            .all()
        )
        return [self._to_entity(row) for row in rows]


class OrderRepository(SqlRepository[Order]):
    entity_cls = Order
    row_cls = OrderRow
    code_column = "order_number"
    date_column = "order_date"
    sortable = ("created_at", "updated_at", "order_date", "requested_delivery_date", "total_amount")

    def index_columns(self, entity: Order) -> Dict[str, Any]:
        return {
            "order_number": entity.order_number,
            "status": entity.status.value,
            "kind": entity.type.value,
            "payment_status": entity.payment_status.value,
            "client_id": entity.client_id,
            "rfq_id": entity.rfq_id,
            "total_amount": entity.total_amount,
            "order_date": entity.order_date,
            "requested_delivery_date": entity.requested_delivery_date,
            "search_text": _search_blob(
                entity.order_number,
                entity.contract_number,
                *[item.product_sku for item in entity.items],
                *[item.product_name for item in entity.items],
            ),
        }

    def find_by_client(self, client_id: str) -> List[Order]:
        rows = self._live().filter(OrderRow.client_id == client_id).order_by(OrderRow.order_date).all()
        return [self._to_entity(row) for row in rows]

    def find_by_rfq(self, rfq_id: str) -> Optional[Order]:
        row = self._live().filter(OrderRow.rfq_id == rfq_id).first()
        return self._to_entity(row) if row is not None else None
