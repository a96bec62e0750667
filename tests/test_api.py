from unittest.mock import patch

from catalog import Criterion
from errors import TransientIOError
from stores import RatingStore

from conftest import bearer, scored


def submission(ship_name="Aurora", imo="", **overrides):
    data = {
        "ship_name": ship_name,
        "imo": imo,
        "disembarkation_date": "2025-03-14",
        "cabin_type": "Spare Officer",
        "general_observation": "",
        "items": {},
    }
    data.update(overrides)
    return data


def test_root(client):
    assert client.get("/").json() == {"message": "Ship Rating App API"}


def test_register_login_me(client):
    res = client.post("/auth/register", json={
        "name": "Ana Souza", "display_name": "Eagle", "email": "ana@example.com", "password": "s3cret",
    })
    assert res.status_code == 200
    assert res.json()["role"] == "pilot"
    assert "password_hash" not in res.json()

    res = client.post("/auth/login", json={"email": "ana@example.com", "password": "s3cret"})
    assert res.status_code == 200
    token = res.json()["access_token"]

    me = client.get("/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["display_name"] == "Eagle"

    bad = client.post("/auth/login", json={"email": "ana@example.com", "password": "nope"})
    assert bad.status_code == 400


def test_catalog(client):
    body = client.get("/catalog").json()
    assert body["version"] == 1
    assert body["criteria"][0] == {"name": Criterion.DEVICE.value, "key": "device"}
    assert body["cabin_types"] == ["PRT", "OWNER", "Spare Officer", "Crew"]


def test_submitting_requires_token(client):
    res = client.post("/ratings", json=submission())
    assert res.status_code == 401


def test_submission_validation(client, pilot):
    assert client.post("/ratings", json=submission(ship_name="  "), headers=bearer(pilot)).status_code == 422
    assert client.post("/ratings", json=submission(cabin_type="Suite"), headers=bearer(pilot)).status_code == 422
    body = submission()
    del body["disembarkation_date"]
    assert client.post("/ratings", json=body, headers=bearer(pilot)).status_code == 422


def test_submit_and_browse(client, pilot):
    res = client.post("/ratings", headers=bearer(pilot), json=submission(
        items=scored(DEVICE=5.0, CABIN_TEMP="3,0"),
        ship_info={"crew_nationality": "Greek", "cabin_count": 2},
    ))
    assert res.status_code == 201
    ship = res.json()["ship"]
    assert ship["means"] == {"device": 5.0, "cabin_temp": 3.0}
    assert ship["info"]["crew_nationality"] == "Greek"

    res = client.post("/ratings", headers=bearer(pilot), json=submission(items=scored(CABIN_TEMP=4)))
    assert res.json()["ship"]["id"] == ship["id"]
    assert res.json()["ship"]["means"] == {"device": 5.0, "cabin_temp": 3.5}

    listed = client.get("/ships", params={"q": "auro"}, headers=bearer(pilot)).json()
    assert [s["id"] for s in listed] == [ship["id"]]

    ship_ratings = client.get(f"/ships/{ship['id']}/ratings", headers=bearer(pilot)).json()
    assert len(ship_ratings) == 2
    assert ship_ratings[0]["id"] == res.json()["rating_id"]
    assert ship_ratings[0]["user_display_name"] == "Hawk"
    assert len(ship_ratings[0]["items"]) == 7

    detail = client.get(f"/ratings/{ship_ratings[1]['id']}", headers=bearer(pilot)).json()
    assert detail["ship_name"] == "Aurora"
    assert detail["cabin_type"] == "Spare Officer"

    mine = client.get("/ratings/mine", headers=bearer(pilot)).json()
    assert [r["id"] for r in mine] == [r["id"] for r in ship_ratings]


def test_imo_reuses_existing_ship(client, db, pilot):
    existing = db["ship"].insert_one({"name": "MV Testing", "imo": "9074729", "info": {}, "means": {}}).inserted_id
    res = client.post("/ratings", headers=bearer(pilot), json=submission("Aurora", " 9074729 "))
    assert res.json()["ship"]["id"] == str(existing)
    assert res.json()["ship"]["name"] == "MV Testing"
    assert db["ship"].count_documents({}) == 1


def test_ship_names(client, db, pilot):
    db["ship"].insert_one({"name": "Aurora", "imo": "9074729", "info": {}, "means": {}})
    db["ship"].insert_one({"name": "Aurora", "info": {}, "means": {}})
    names = client.get("/ships/names", headers=bearer(pilot)).json()
    assert names == ["9074729", "Aurora"]


def test_unknown_ids_are_404(client, pilot):
    assert client.get("/ships/nope", headers=bearer(pilot)).status_code == 404
    assert client.get("/ratings/64b7f0c2a1b2c3d4e5f60718", headers=bearer(pilot)).status_code == 404


def test_admin_delete_recomputes_in_background(client, db, pilot, admin):
    a = client.post("/ratings", headers=bearer(pilot), json=submission(items=scored(DEVICE=5.0, CABIN_TEMP=3.0))).json()
    b = client.post("/ratings", headers=bearer(pilot), json=submission(items=scored(DEVICE=0, CABIN_TEMP=4.0))).json()
    assert b["ship"]["means"] == {"device": 5.0, "cabin_temp": 3.5}

    assert client.delete(f"/admin/ratings/{a['rating_id']}", headers=bearer(pilot)).status_code == 403
    res = client.delete(f"/admin/ratings/{a['rating_id']}", headers=bearer(admin))
    assert res.json() == {"deleted": True}

    ship = client.get(f"/ships/{b['ship']['id']}", headers=bearer(pilot)).json()
    assert ship["means"] == {"cabin_temp": 4.0}

    client.delete(f"/admin/ratings/{b['rating_id']}", headers=bearer(admin))
    ship = client.get(f"/ships/{b['ship']['id']}", headers=bearer(pilot)).json()
    assert ship["means"] == {}
    assert client.delete(f"/admin/ratings/{b['rating_id']}", headers=bearer(admin)).status_code == 404


def test_admin_batch_recompute(client, db, admin):
    ship_id = db["ship"].insert_one({"name": "Aurora", "info": {}, "means": {"food": 1.0}}).inserted_id
    db["rating"].insert_one({"ship_id": ship_id, "items": scored(FOOD=4, DEVICE="2,5")})
    res = client.post("/admin/recompute-means", headers=bearer(admin))
    assert res.json() == {"recomputed": 1}
    assert db["ship"].find_one({"_id": ship_id})["means"] == {"device": 2.5, "food": 4.0}


def test_storage_outage_is_reported(client, pilot):
    with patch.object(RatingStore, "append", side_effect=TransientIOError("insert failed")):
        res = client.post("/ratings", headers=bearer(pilot), json=submission())
    assert res.status_code == 503


def test_delete_trigger_failure_does_not_fail_the_delete(client, db, pilot, admin):
    created = client.post("/ratings", headers=bearer(pilot), json=submission(items=scored(FOOD=4))).json()
    with patch.object(RatingStore, "list_for_ship", side_effect=TransientIOError("read failed")):
        res = client.delete(f"/admin/ratings/{created['rating_id']}", headers=bearer(admin))
    assert res.status_code == 200
    # Means stay stale until the next recomputation.
    assert db["ship"].find_one({})["means"] == {"food": 4.0}


def test_reading_legacy_ratings_normalizes_items(client, db, pilot):
    ship_id = db["ship"].insert_one({"name": "Aurora", "info": {}, "means": {}}).inserted_id
    rating_id = db["rating"].insert_one({
        "ship_id": ship_id,
        "user_display_name": "Hawk",
        "items": {
            Criterion.FOOD.value: {"score": "2,5", "note": None},
            Criterion.DEVICE.value: {"score": 9, "note": " loose ladder "},
        },
        "ship_info": {"cabin_count": -3},
    }).inserted_id

    res = client.get(f"/ships/{ship_id}/ratings", headers=bearer(pilot))
    assert res.status_code == 200
    items = res.json()[0]["items"]
    assert items[Criterion.FOOD.value] == {"score": 2.5, "note": ""}
    assert items[Criterion.DEVICE.value] == {"score": 0.0, "note": "loose ladder"}
    assert res.json()[0]["ship_info"]["cabin_count"] == 0

    detail = client.get(f"/ratings/{rating_id}", headers=bearer(pilot))
    assert detail.status_code == 200
    assert detail.json()["items"][Criterion.FOOD.value]["score"] == 2.5
