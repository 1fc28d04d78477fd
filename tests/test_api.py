"""HTTP-level tests: the wizard routes, submission, review and the address lookups."""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from resident_portal.main import create_app
from resident_portal.models.address_area import AddressArea, AreaLevel
from resident_portal.models.profile_status import ProfileStatus
from resident_portal.services.notifications import NotifyEvent, RecordingNotifier


@pytest.fixture
def api_notifier():
    return RecordingNotifier()


@pytest.fixture
def client(engine, api_notifier):
    app = create_app(engine=engine, notifier=api_notifier)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def forms(make_head, make_child, make_other, make_census):
    head = make_head().to_document()
    composition = {
        "childrenCount": 1,
        "numberOfhouseholdMembers": 1,
        "members": [make_child().to_document(), make_other().to_document()],
    }
    return {"head": head, "composition": composition, "census": make_census().to_document()}


def _complete(client, rid, forms):
    for body in (forms["head"], forms["composition"], forms["census"]):
        r = client.post(f"/profiling/{rid}/advance", json=body)
        assert r.status_code == 200, r.text
    return r.json()


class TestMeta:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["ok"] is True


class TestWizardRoutes:
    def test_fresh_wizard(self, client):
        r = client.get("/profiling/u-new")
        assert r.status_code == 200
        body = r.json()
        assert body["state"]["step"] == "household_head"
        assert body["state"]["status"] is None
        assert body["profile"]["household"]["barangay"] == "104305040"

    def test_full_flow_to_submission(self, client, api_notifier, forms):
        state = _complete(client, "u-flow", forms)
        assert state["step"] == "confirmation"
        assert state["steps"] == ["household_head", "composition", "census", "confirmation"]

        r = client.post("/profiling/u-flow/submit")
        assert r.status_code == 200, r.text
        assert r.json()["status"] == int(ProfileStatus.PENDING_INITIAL_REVIEW)
        assert r.json()["status_label"] == "Pending"
        assert r.json()["notified"] is True
        assert api_notifier.sent == [(NotifyEvent.PENDING, "u-flow")]
        assert "u-flow" not in client.app.state.wizards

        r = client.get("/profiling/u-flow")
        assert r.json()["state"]["status_label"] == "Pending"
        assert r.json()["profile"]["household"]["firstName"] == "JUAN"

    def test_validation_error_is_422(self, client, forms):
        head = dict(forms["head"])
        del head["phoneNumber"]
        r = client.post("/profiling/u-bad/advance", json=head)
        assert r.status_code == 422
        detail = r.json()["detail"]
        assert detail["kind"] == "validation"
        assert detail["field"] == "phone_number"
        assert detail["section"] == "household"

    def test_retreat_from_first_step_is_409(self, client):
        r = client.post("/profiling/u-r/retreat")
        assert r.status_code == 409
        assert r.json()["detail"]["kind"] == "navigation"

    def test_count_mismatch_is_422(self, client, forms):
        client.post("/profiling/u-mm/advance", json=forms["head"])
        composition = dict(forms["composition"], childrenCount=3)
        r = client.post("/profiling/u-mm/advance", json=composition)
        assert r.status_code == 422
        assert r.json()["detail"]["kind"] == "validation"
        assert r.json()["detail"]["field"] == "members"

    def test_dependent_kind_change_is_500(self, client, forms):
        client.post("/profiling/u-kind/advance", json=forms["head"])
        client.post("/profiling/u-kind/resize", json={"childrenCount": 1, "numberOfhouseholdMembers": 0})
        r = client.post("/profiling/u-kind/dependents/0", json={"relation": "Uncle"})
        assert r.status_code == 500
        assert r.json()["detail"]["kind"] == "inconsistent_state"

    def test_resize_and_edit_dependent(self, client, forms):
        client.post("/profiling/u-dep/advance", json=forms["head"])

        r = client.post("/profiling/u-dep/resize", json={"childrenCount": 2, "numberOfhouseholdMembers": 1})
        assert r.status_code == 200
        members = r.json()["members"]
        assert len(members) == 3
        assert members[0]["relation"] == "Son"
        assert members[0]["address"] == "123 Rizal St"

        r = client.post("/profiling/u-dep/dependents/1", json={"relation": "Daughter", "firstName": "Liza"})
        assert r.status_code == 200
        assert r.json()["member"]["gender"] == "Female"
        assert r.json()["state"]["dirty"] == ["composition"]

    def test_negative_dependent_index_is_422(self, client, forms):
        client.post("/profiling/u-neg/advance", json=forms["head"])
        client.post("/profiling/u-neg/resize", json={"childrenCount": 1, "numberOfhouseholdMembers": 1})

        r = client.post("/profiling/u-neg/dependents/-1", json={"firstName": "X"})
        assert r.status_code == 422

        members = client.get("/profiling/u-neg").json()["profile"]["householdComposition"]
        assert all(m.get("firstName") != "X" for m in members)

    def test_confirmation_tabs(self, client, forms):
        _complete(client, "u-tab", forms)
        assert client.post("/profiling/u-tab/confirmation/census").json()["tab"] == "census"
        assert client.post("/profiling/u-tab/confirmation/spouse").status_code == 409


class TestStatusFlow:
    def test_approved_profile_is_read_only(self, client, seed_resident, make_profile, forms):
        seed_resident("u-appr", profile=make_profile(), status=ProfileStatus.APPROVED)

        r = client.post("/profiling/u-appr/advance", json=forms["head"])
        assert r.status_code == 409

        r = client.post("/profiling/u-appr/submit")
        assert r.status_code == 409
        assert r.json()["detail"]["kind"] == "transition"

    def test_review_then_update_request(self, client, api_notifier, seed_resident, make_profile):
        seed_resident("u-rev", profile=make_profile(), status=ProfileStatus.PENDING_INITIAL_REVIEW)

        r = client.post("/review/u-rev/decision", json={"decision": "approve"})
        assert r.status_code == 200, r.text
        assert r.json()["previous_status"] == 3
        assert r.json()["new_status"] == 1

        r = client.post("/profiling/u-rev/request-update", json={"reason": "new address"})
        assert r.status_code == 200, r.text
        state = r.json()["state"]
        assert state["status"] == int(ProfileStatus.PENDING_UPDATE_REQUEST)
        assert state["read_only"] is True
        assert [e for e, _ in api_notifier.sent] == [NotifyEvent.APPROVAL, NotifyEvent.UPDATE_REQUEST]

    def test_reject_requires_reason(self, client, seed_resident, make_profile):
        seed_resident("u-rr", profile=make_profile(), status=ProfileStatus.PENDING_INITIAL_REVIEW)
        r = client.post("/review/u-rr/decision", json={"decision": "reject"})
        assert r.status_code == 422
        assert r.json()["detail"]["field"] == "reason"

    def test_rejection_restarts_the_wizard(self, client, forms):
        _complete(client, "u-back", forms)
        client.post("/profiling/u-back/submit")

        r = client.post("/review/u-back/decision", json={"decision": "reject", "reason": "unreadable ID"})
        assert r.status_code == 200

        body = client.get("/profiling/u-back").json()
        assert body["state"]["step"] == "household_head"
        assert body["state"]["status_reason"] == "unreadable ID"
        assert body["state"]["needs_acknowledgement"] is True
        assert "firstName" not in body["profile"]["household"]

    def test_unknown_decision_is_rejected_by_schema(self, client):
        r = client.post("/review/u-x/decision", json={"decision": "shrug"})
        assert r.status_code == 422


class TestReports:
    def test_counts_and_zones(self, client, seed_resident, make_profile):
        seed_resident("u-1", profile=make_profile(), status=ProfileStatus.APPROVED)
        seed_resident("u-2", profile=make_profile(), status=ProfileStatus.REJECTED)

        counts = client.get("/review/counts").json()
        assert counts["total_residents"] == 2
        assert counts["by_status"]["Approved"] == 1

        zones = client.get("/review/zones").json()
        assert len(zones) == 9
        assert zones[2] == {"zone": 3, "households": 1, "population": 3}


class TestAddresses:
    @pytest.fixture(autouse=True)
    def areas(self, engine):
        with Session(engine) as session:
            session.add_all([
                AddressArea(code="100000000", name="Northern Mindanao", level=AreaLevel.REGION),
                AddressArea(code="104300000", name="Misamis Oriental", level=AreaLevel.PROVINCE, parent_code="100000000"),
                AddressArea(code="104305000", name="Cagayan de Oro", level=AreaLevel.CITY, parent_code="104300000"),
                AddressArea(code="104305040", name="Bonbon", level=AreaLevel.BARANGAY, parent_code="104305000"),
                AddressArea(code="104305001", name="Agusan", level=AreaLevel.BARANGAY, parent_code="104305000"),
            ])
            session.commit()

    def test_hierarchy(self, client):
        assert client.get("/addresses/regions").json() == [{"code": "100000000", "name": "Northern Mindanao"}]
        assert client.get("/addresses/regions/100000000/provinces").json()[0]["name"] == "Misamis Oriental"
        assert client.get("/addresses/provinces/104300000/cities").json()[0]["code"] == "104305000"
        names = [b["name"] for b in client.get("/addresses/cities/104305000/barangays").json()]
        assert names == ["Agusan", "Bonbon"]

    def test_unknown_parent_is_empty(self, client):
        assert client.get("/addresses/regions/999/provinces").json() == []

    def test_confirmation_resolves_names(self, client):
        household = client.get("/profiling/u-names").json()["profile"]["household"]
        assert household["barangayName"] == "Bonbon"
        assert household["cityName"] == "Cagayan de Oro"
