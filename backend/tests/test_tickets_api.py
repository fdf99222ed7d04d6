from __future__ import annotations

from gatepass.models.resource import ScanRecord


def _make_event(c, name="Launch party"):
    res = c.post("/events", json={"name": name, "location": "Hall B"})
    assert res.status_code == 201
    return res.json()


def test_admin_creates_event_and_everyone_can_list(client_for, admin, receiver):
    with client_for(admin) as c:
        event = _make_event(c)
    assert event["name"] == "Launch party"

    with client_for(receiver) as c:
        res = c.get("/events")
    assert res.status_code == 200
    assert [e["id"] for e in res.json()] == [event["id"]]


def test_only_admin_creates_events(client_for, generator):
    with client_for(generator) as c:
        res = c.post("/events", json={"name": "Nope"})
    assert res.status_code == 403


def test_issue_tickets_and_list_my_tickets(client_for, admin, receiver):
    with client_for(admin) as c:
        event = _make_event(c)
        res = c.post("/tickets/issue", json={"user_id": receiver.id, "event_id": event["id"], "quantity": 3})
    assert res.status_code == 201
    issued = res.json()["tickets"]
    assert len(issued) == 3
    assert len({t["code"] for t in issued}) == 3
    assert all(t["kind"] == "ticket" and t["one_time"] for t in issued)
    assert all(t["assigned_user_id"] == receiver.id and t["event_id"] == event["id"] for t in issued)

    with client_for(receiver) as c:
        mine = c.get("/tickets/me").json()["tickets"]
    assert sorted(t["id"] for t in mine) == sorted(t["id"] for t in issued)


def test_issue_tickets_does_not_count_against_generic_limit(client_for, admin, receiver, monkeypatch):
    from gatepass.core import config as app_config

    monkeypatch.setattr(app_config.settings, "DAILY_GENERIC_CODE_LIMIT", 1)
    with client_for(admin) as c:
        event = _make_event(c)
        res = c.post("/tickets/issue", json={"user_id": receiver.id, "event_id": event["id"], "quantity": 5})
    assert res.status_code == 201


def test_issue_tickets_validation(client_for, admin, generator, receiver):
    with client_for(admin) as c:
        event = _make_event(c)
        assert c.post(
            "/tickets/issue", json={"user_id": 999999, "event_id": event["id"]}
        ).status_code == 404
        assert c.post(
            "/tickets/issue", json={"user_id": receiver.id, "event_id": 999999}
        ).status_code == 404
        assert c.post(
            "/tickets/issue", json={"user_id": receiver.id, "event_id": event["id"], "quantity": 0}
        ).status_code == 400

    with client_for(generator) as c:
        res = c.post("/tickets/issue", json={"user_id": receiver.id, "event_id": event["id"]})
    assert res.status_code == 403


def test_ticket_is_validated_by_scanner_once(client_for, admin, scanner, receiver):
    with client_for(admin) as c:
        event = _make_event(c)
        ticket = c.post(
            "/tickets/issue", json={"user_id": receiver.id, "event_id": event["id"]}
        ).json()["tickets"][0]

    with client_for(receiver) as c:
        assert c.post("/resources/validate", json={"code": ticket["code"]}).status_code == 403

    with client_for(scanner) as c:
        assert c.post("/resources/validate", json={"code": ticket["code"]}).status_code == 200
        assert c.post("/resources/validate", json={"code": ticket["code"]}).status_code == 400

    with client_for(receiver) as c:
        mine = c.get("/tickets/me").json()["tickets"]
    assert mine[0]["is_valid"] is False


def test_event_get_update_and_delete(client_for, admin, receiver):
    with client_for(admin) as c:
        event = _make_event(c)
        res = c.put(f"/events/{event['id']}", json={"location": "Main stage"})
        assert res.status_code == 200
        assert res.json()["location"] == "Main stage"
        assert res.json()["name"] == "Launch party"

        assert c.put(f"/events/{event['id']}", json={"name": None}).status_code == 400
        assert c.put("/events/999999", json={"name": "Ghost"}).status_code == 404

    with client_for(receiver) as c:
        res = c.get(f"/events/{event['id']}")
        assert res.status_code == 200
        assert res.json()["location"] == "Main stage"
        assert c.get("/events/999999").status_code == 404

    with client_for(admin) as c:
        assert c.delete(f"/events/{event['id']}").status_code == 204
        assert c.get(f"/events/{event['id']}").status_code == 404
        assert c.get("/events").json() == []


def test_only_admin_changes_events(client_for, admin, generator):
    with client_for(admin) as c:
        event = _make_event(c)
    with client_for(generator) as c:
        assert c.put(f"/events/{event['id']}", json={"name": "Nope"}).status_code == 403
        assert c.delete(f"/events/{event['id']}").status_code == 403


def test_event_with_issued_tickets_cannot_be_deleted(client_for, admin, scanner, receiver, db_session):
    with client_for(admin) as c:
        event = _make_event(c)
        ticket = c.post(
            "/tickets/issue", json={"user_id": receiver.id, "event_id": event["id"]}
        ).json()["tickets"][0]
    with client_for(scanner) as c:
        assert c.post("/resources/validate", json={"code": ticket["code"]}).status_code == 200

    with client_for(admin) as c:
        res = c.delete(f"/events/{event['id']}")
        assert res.status_code == 409
        assert res.json()["error"] == "CONFLICT"
        assert res.json()["details"] == {"tickets": 1}
        assert c.get(f"/events/{event['id']}").status_code == 200

    with client_for(receiver) as c:
        mine = c.get("/tickets/me").json()["tickets"]
    assert [t["event_id"] for t in mine] == [event["id"]]
    assert db_session.query(ScanRecord).filter(ScanRecord.resource_id == ticket["id"]).count() == 1
