from __future__ import annotations


def test_profile_defaults_for_new_user(client, auth_headers):
    resp = client.get("/api/user/profile", headers=auth_headers("new-user"))
    assert resp.status_code == 200
    assert resp.json() == {
        "user_id": "new-user",
        "email": "new-user@example.com",
        "base_address": None,
        "city": None,
        "country": None,
        "plan_tier": "basic",
    }


def test_profile_update_trims_and_clears(client, auth_headers):
    resp = client.put(
        "/api/user/profile",
        headers=auth_headers(),
        json={"base_address": "  Landstraße 10 ", "city": "Linz", "country": "Austria"},
    )
    assert resp.status_code == 200
    assert resp.json()["base_address"] == "Landstraße 10"

    resp = client.put("/api/user/profile", headers=auth_headers(), json={"city": "   "})
    body = resp.json()
    assert body["city"] is None
    assert body["country"] == "Austria"
