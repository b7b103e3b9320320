"""Tests for the customers JSON API."""
import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.crm import create_app
from app.crm.db import session_scope
from app.crm.models import Base
from app.crm.modules.customers.models import Customer


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("CRM_DB_CONNECTION_STRING", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("DATABASE_URL", raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _payload(**overrides):
    p = {"name": "A", "role": "R", "email": "a@x.com", "phone": "1", "contacted": False}
    p.update(overrides)
    return p


def _seed(app, *names):
    with session_scope(app) as s:
        rows = [Customer(name=n, role="", email="", phone="", contacted=False) for n in names]
        s.add_all(rows)
        s.flush()
        return [c.id for c in rows]


def test_add_get_delete_scenario(client):
    r = client.post("/customers", json=_payload())
    assert r.status_code == 201
    created = r.json
    assert created["id"] > 0
    for k, v in _payload().items():
        assert created[k] == v

    cid = created["id"]
    r = client.get(f"/customers/{cid}")
    assert r.status_code == 200
    assert r.json == created

    r = client.delete(f"/customers/{cid}")
    assert r.status_code == 200
    assert r.json == {"result": f"Customer {cid} deleted"}

    r = client.get(f"/customers/{cid}")
    assert r.status_code == 404
    assert r.json["error"] == "not_found"


def test_add_ignores_client_id(client):
    r = client.post("/customers", json=_payload(id=4242))
    assert r.status_code == 201
    assert r.json["id"] != 4242


def test_add_rejects_malformed_json(client):
    r = client.post("/customers", data="{not json", content_type="application/json")
    assert r.status_code == 400
    assert r.json["error"] == "bad_request"
    assert r.json["message"]


def test_add_rejects_empty_body(client):
    r = client.post("/customers", data="", content_type="application/json")
    assert r.status_code == 400


def test_add_rejects_wrong_field_type(client):
    r = client.post("/customers", json=_payload(contacted="yes"))
    assert r.status_code == 400
    assert "contacted" in r.json["message"]


def test_list_empty_is_array(client):
    r = client.get("/customers")
    assert r.status_code == 200
    assert r.mimetype == "application/json"
    assert r.json == []


def test_list_ordered_by_id(app, client):
    ids = _seed(app, "first", "second", "third")
    client.delete(f"/customers/{ids[1]}")
    client.post("/customers", json=_payload(name="fourth"))

    r = client.get("/customers")
    got = [c["id"] for c in r.json]
    assert got == sorted(got)
    assert [c["name"] for c in r.json] == ["first", "third", "fourth"]


def test_ids_not_reused_after_delete(client):
    first = client.post("/customers", json=_payload()).json["id"]
    second = client.post("/customers", json=_payload()).json["id"]
    client.delete(f"/customers/{second}")
    third = client.post("/customers", json=_payload()).json["id"]
    assert third > second > first


def test_missing_id_is_not_found_everywhere(client):
    assert client.get("/customers/9999").status_code == 404
    assert client.put("/customers/9999", json=_payload()).status_code == 404
    assert client.delete("/customers/9999").status_code == 404


def test_non_integer_id_is_not_found(client):
    assert client.get("/customers/abc").status_code == 404
    assert client.delete("/customers/abc").status_code == 404


def test_delete_twice(app, client):
    (cid,) = _seed(app, "gone")
    assert client.delete(f"/customers/{cid}").status_code == 200
    assert client.delete(f"/customers/{cid}").status_code == 404


def test_update_uses_path_id_and_overwrites_all_fields(app, client):
    (cid,) = _seed(app, "before")
    client.put(f"/customers/{cid}", json=_payload(name="full", contacted=True))

    r = client.put(f"/customers/{cid}", json={"id": 777, "name": "after"})
    assert r.status_code == 200
    assert r.json == {"id": cid, "name": "after", "role": "", "email": "", "phone": "", "contacted": False}

    r = client.get(f"/customers/{cid}")
    assert r.json == {"id": cid, "name": "after", "role": "", "email": "", "phone": "", "contacted": False}


def test_update_rejects_malformed_json(app, client):
    (cid,) = _seed(app, "x")
    r = client.put(f"/customers/{cid}", data="[", content_type="application/json")
    assert r.status_code == 400


def test_batch_update_counts_only_existing_rows(app, client):
    a, b = _seed(app, "a", "b")
    r = client.put(
        "/customers/batch",
        json=[
            _payload(id=a, name="a2", contacted=True),
            _payload(id=999999, name="ghost"),
        ],
    )
    assert r.status_code == 200
    assert r.json == {"result": "Batch update completed", "customers_updated": 1}

    assert client.get(f"/customers/{a}").json["name"] == "a2"
    assert client.get(f"/customers/{b}").json["name"] == "b"


def test_batch_route_wins_over_id_route(app, client):
    _seed(app, "a")
    r = client.put("/customers/batch", json=[])
    assert r.status_code == 200
    assert r.json["customers_updated"] == 0

    # The single-update handler would accept an object; the batch handler must not.
    r = client.put("/customers/batch", json=_payload())
    assert r.status_code == 400
    assert r.json["message"].startswith("Invalid request body:")


def test_batch_rejects_malformed_json(client):
    r = client.put("/customers/batch", data="[{", content_type="application/json")
    assert r.status_code == 400
    assert r.json["message"].startswith("Invalid request body:")


def test_batch_rolls_back_on_storage_error(app, client):
    a, b = _seed(app, "a", "b")
    engine = app.extensions["sqlalchemy_engine"]
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TRIGGER reject_boom BEFORE UPDATE ON customers "
            "WHEN NEW.name = 'boom' BEGIN SELECT RAISE(ABORT, 'boom rejected'); END"
        ))

    r = client.put(
        "/customers/batch",
        json=[_payload(id=a, name="a2"), _payload(id=b, name="boom")],
    )
    assert r.status_code == 500
    assert r.json["error"] == "internal_error"
    assert r.json["message"].startswith("Failed to update customer:")

    assert client.get(f"/customers/{a}").json["name"] == "a"
    assert client.get(f"/customers/{b}").json["name"] == "b"


def test_storage_error_is_internal_error(app, client):
    Base.metadata.drop_all(bind=app.extensions["sqlalchemy_engine"])
    r = client.get("/customers")
    assert r.status_code == 500
    assert r.json["error"] == "internal_error"
    assert "customers" in r.json["message"]


@pytest.mark.parametrize(
    "method, path, body",
    [
        ("post", "/customers", {"name": "A"}),
        ("get", "/customers/1", None),
        ("put", "/customers/1", {"name": "A"}),
        ("delete", "/customers/1", None),
    ],
)
def test_single_row_storage_errors_are_internal_errors(app, client, method, path, body):
    Base.metadata.drop_all(bind=app.extensions["sqlalchemy_engine"])
    r = getattr(client, method)(path, json=body) if body is not None else getattr(client, method)(path)
    assert r.status_code == 500
    assert r.json["error"] == "internal_error"
    assert "customers" in r.json["message"]


def test_batch_commit_failure_is_internal_error(app, client, monkeypatch):
    (a,) = _seed(app, "a")

    def _failing_commit(self):
        raise OperationalError("COMMIT", None, Exception("disk I/O error"))

    with monkeypatch.context() as m:
        m.setattr(Session, "commit", _failing_commit)
        r = client.put("/customers/batch", json=[_payload(id=a, name="a2")])

    assert r.status_code == 500
    assert r.json["message"].startswith("Failed to commit transaction:")
    assert client.get(f"/customers/{a}").json["name"] == "a"


def test_batch_rejects_id_outside_64_bit_range(app, client):
    _seed(app, "a")
    r = client.put("/customers/batch", json=[{"id": 2**70, "name": "x"}])
    assert r.status_code == 400
    assert r.json["message"] == "Invalid request body: field 'id' must be an integer"

    r = client.put("/customers/batch", json=[{"id": -(2**63) - 1, "name": "x"}])
    assert r.status_code == 400


def test_path_id_outside_64_bit_range_is_not_found(client):
    huge = 99999999999999999999999
    assert client.get(f"/customers/{huge}").status_code == 404
    assert client.put(f"/customers/{huge}", json=_payload()).status_code == 404
    assert client.delete(f"/customers/{huge}").status_code == 404


def test_null_body_is_bad_request(client):
    r = client.post("/customers", data="null", content_type="application/json")
    assert r.status_code == 400
    r = client.put("/customers/batch", data="null", content_type="application/json")
    assert r.status_code == 400


def test_customer_writes_are_logged_at_info(client, caplog):
    cid = client.post("/customers", json=_payload()).json["id"]
    assert f"Added customer id={cid}" in caplog.text


def test_log_level_setting_applies_to_module_loggers(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("CRM_DB_CONNECTION_STRING", f"sqlite:///{tmp_path/'quiet.db'}")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    quiet = create_app()
    Base.metadata.create_all(bind=quiet.extensions["sqlalchemy_engine"])
    try:
        quiet.test_client().post("/customers", json=_payload())
        assert "Added customer" not in caplog.text
    finally:
        # Loggers are process-wide; restore the default for later tests.
        quiet.logger.setLevel("INFO")
