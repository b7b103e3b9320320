from __future__ import annotations

from collections.abc import Callable
from typing import Any, NamedTuple

from flask import Blueprint, Flask, current_app, jsonify, request

from app.crm.modules.customers.service import (
    MAX_CUSTOMER_ID,
    CustomerRepository,
    parse_batch_body,
    parse_customer_body,
)

bp = Blueprint("customers", __name__)


def customer_repository() -> CustomerRepository:
    return current_app.extensions["customer_repository"]


def init_customer_repository(app: Flask) -> CustomerRepository:
    repo = CustomerRepository(app.extensions["sqlalchemy_sessionmaker"])
    app.extensions["customer_repository"] = repo
    return repo


def customers_list():
    return jsonify(customer_repository().list_customers())


def customers_create():
    fields = parse_customer_body(request.get_data())
    return jsonify(customer_repository().add_customer(fields)), 201


def customers_batch_update():
    updates = parse_batch_body(request.get_data())
    return jsonify(customer_repository().batch_update(updates).to_dict())


def customer_detail(customer_id: int):
    return jsonify(customer_repository().get_customer(customer_id))


def customer_update(customer_id: int):
    fields = parse_customer_body(request.get_data())
    return jsonify(customer_repository().update_customer(customer_id, fields))


def customer_delete(customer_id: int):
    return jsonify({"result": customer_repository().delete_customer(customer_id)})


class Route(NamedTuple):
    rule: str
    methods: tuple[str, ...]
    view: Callable[..., Any]


# Resolution order: rules are registered top to bottom, and a literal segment
# always ranks above a variable segment in the same position. `/customers/batch`
# therefore sits above `/customers/<int:customer_id>`; "batch" is never an id.
# Ids beyond the 64-bit column range do not match and route to 404.
_ID = f"<int(max={MAX_CUSTOMER_ID}):customer_id>"

ROUTES: tuple[Route, ...] = (
    Route("/customers", ("GET",), customers_list),
    Route("/customers", ("POST",), customers_create),
    Route("/customers/batch", ("PUT",), customers_batch_update),
    Route(f"/customers/{_ID}", ("GET",), customer_detail),
    Route(f"/customers/{_ID}", ("PUT",), customer_update),
    Route(f"/customers/{_ID}", ("DELETE",), customer_delete),
)

for _route in ROUTES:
    bp.add_url_rule(_route.rule, view_func=_route.view, methods=list(_route.methods))
