"""
Customer repository.

Each operation is one parameterized statement against the shared engine,
except `batch_update`, which runs one UPDATE per element inside a single
transaction:

Situation                      | Outcome
-------------------------------|------------------------------------------
element id matches a row       | row overwritten, counted
element id matches no row      | skipped, not counted, batch continues
any storage error              | whole batch rolled back, InternalError

Storage failures surface as InternalError carrying the driver's message.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.crm.errors import BadRequest, InternalError, NotFound
from app.crm.modules.customers.models import CUSTOMER_FIELDS, Customer

logger = logging.getLogger(__name__)

_STRING_FIELDS = ("name", "role", "email", "phone")

# ids are stored as signed 64-bit integers.
MAX_CUSTOMER_ID = 2**63 - 1


@dataclass(frozen=True)
class BatchResult:
    customers_updated: int
    result: str = "Batch update completed"

    def to_dict(self) -> dict[str, Any]:
        return {"result": self.result, "customers_updated": self.customers_updated}


def _decode_json(raw: bytes | str) -> Any:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if not raw.strip():
        raise BadRequest("Request body is empty")
    return json.loads(raw)


def customer_fields_from_payload(obj: Any) -> dict[str, Any]:
    """
    Validate the JSON shape of one customer and return its mutable fields.

    Missing fields take their zero value; unknown fields are ignored; a
    client-supplied `id` is type-checked but never written.
    """
    if not isinstance(obj, dict):
        raise BadRequest(f"expected a JSON object, got {type(obj).__name__}")
    fields: dict[str, Any] = {}
    for key in _STRING_FIELDS:
        value = obj.get(key)
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise BadRequest(f"field '{key}' must be a string")
        fields[key] = value
    contacted = obj.get("contacted")
    if contacted is None:
        contacted = False
    if not isinstance(contacted, bool):
        raise BadRequest("field 'contacted' must be a boolean")
    fields["contacted"] = contacted
    return fields


def _payload_id(obj: dict[str, Any]) -> int:
    value = obj.get("id")
    if value is None:
        return 0
    # bool is an int subclass; `true` is not an id.
    if isinstance(value, bool) or not isinstance(value, int):
        raise BadRequest("field 'id' must be an integer")
    if not -MAX_CUSTOMER_ID - 1 <= value <= MAX_CUSTOMER_ID:
        raise BadRequest("field 'id' must be an integer")
    return value


def parse_customer_body(raw: bytes | str) -> dict[str, Any]:
    try:
        obj = _decode_json(raw)
    except ValueError as e:
        raise BadRequest(str(e)) from e
    return customer_fields_from_payload(obj)


def parse_batch_body(raw: bytes | str) -> list[tuple[int, dict[str, Any]]]:
    """Return (id, fields) pairs for a JSON array of customers."""
    try:
        items = _decode_json(raw)
        if not isinstance(items, list):
            raise BadRequest(f"expected a JSON array, got {type(items).__name__}")
        pairs = []
        for obj in items:
            fields = customer_fields_from_payload(obj)
            pairs.append((_payload_id(obj), fields))
    except BadRequest as e:
        raise BadRequest(f"Invalid request body: {e.message}") from e
    except ValueError as e:
        raise BadRequest(f"Invalid request body: {e}") from e
    return pairs


class CustomerRepository:
    """SQL-backed customer operations bound to one sessionmaker."""

    def __init__(self, sm: sessionmaker[Session]) -> None:
        self._sm = sm

    def list_customers(self) -> list[dict[str, Any]]:
        try:
            with self._sm() as s:
                rows = s.scalars(select(Customer).order_by(Customer.id.asc())).all()
                return [c.to_dict() for c in rows]
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

    def get_customer(self, customer_id: int) -> dict[str, Any]:
        try:
            with self._sm() as s:
                c = s.scalars(select(Customer).where(Customer.id == customer_id)).one_or_none()
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e
        if c is None:
            raise NotFound()
        return c.to_dict()

    def add_customer(self, fields: dict[str, Any]) -> dict[str, Any]:
        c = Customer(**{k: fields[k] for k in CUSTOMER_FIELDS})
        try:
            with self._sm.begin() as s:
                s.add(c)
                s.flush()
                created = c.to_dict()
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e
        logger.info("Added customer id=%s", created["id"])
        return created

    def update_customer(self, customer_id: int, fields: dict[str, Any]) -> dict[str, Any]:
        values = {k: fields[k] for k in CUSTOMER_FIELDS}
        try:
            with self._sm.begin() as s:
                res = s.execute(update(Customer).where(Customer.id == customer_id).values(**values))
                affected = res.rowcount
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e
        if affected == 0:
            raise NotFound()
        logger.info("Updated customer id=%s", customer_id)
        return {"id": customer_id, **values}

    def batch_update(self, updates: list[tuple[int, dict[str, Any]]]) -> BatchResult:
        try:
            s = self._sm()
        except SQLAlchemyError as e:
            raise InternalError(f"Failed to start transaction: {e}") from e

        updated = 0
        with s:
            try:
                s.begin()
            except SQLAlchemyError as e:
                raise InternalError(f"Failed to start transaction: {e}") from e

            for customer_id, fields in updates:
                values = {k: fields[k] for k in CUSTOMER_FIELDS}
                try:
                    res = s.execute(update(Customer).where(Customer.id == customer_id).values(**values))
                except SQLAlchemyError as e:
                    s.rollback()
                    logger.warning("Batch update rolled back at customer id=%s: %s", customer_id, e)
                    raise InternalError(f"Failed to update customer: {e}") from e
                if res.rowcount > 0:
                    updated += 1

            try:
                s.commit()
            except SQLAlchemyError as e:
                s.rollback()
                raise InternalError(f"Failed to commit transaction: {e}") from e

        logger.info("Batch update committed: %s of %s customers updated", updated, len(updates))
        return BatchResult(customers_updated=updated)

    def delete_customer(self, customer_id: int) -> str:
        try:
            with self._sm.begin() as s:
                res = s.execute(delete(Customer).where(Customer.id == customer_id))
                affected = res.rowcount
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e
        if affected == 0:
            raise NotFound()
        logger.info("Deleted customer id=%s", customer_id)
        return f"Customer {customer_id} deleted"
