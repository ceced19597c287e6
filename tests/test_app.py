from conftest import AFTER, COMMISSIONER, seed_election


def vote_body(election, president="alice"):
    return {"votes": [
        {"position_id": str(election.president["_id"]), "votes": [str(election.candidates[president]["_id"])]},
        {"position_id": str(election.senator["_id"]), "votes": ["abstain"]},
    ]}


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "healthy"


def test_unknown_route_is_json(client):
    res = client.get("/no/such/route")
    assert res.status_code == 404
    assert res.get_json()["error"] == "not_found"


def test_commissioner_creates_an_election(client, auth_header):
    res = client.post("/elections", headers=auth_header(COMMISSIONER), json={
        "name": "Org Election",
        "slug": "org-2024",
        "start_date": "2024-01-01T00:00:00Z",
        "end_date": "2024-01-02T00:00:00Z",
        "template": 1,
    })
    assert res.status_code == 201
    election = res.get_json()["election"]
    assert election["slug"] == "org-2024"
    assert election["start_date"].startswith("2024-01-01T00:00:00")

    mine = client.get("/my_elections", headers=auth_header(COMMISSIONER)).get_json()["elections"]
    assert [e["id"] for e in mine] == [election["id"]]
    positions = client.get(f"/elections/{election['id']}/positions", headers=auth_header(COMMISSIONER))
    assert len(positions.get_json()["positions"]) == 9


def test_validation_errors_are_400(client, auth_header):
    res = client.post("/elections", headers=auth_header(COMMISSIONER), json={"name": "x", "slug": "bad slug"})
    assert res.status_code == 400
    assert res.get_json()["error"] == "invalid_request"


def test_vote_flow(client, election, auth_header, clock):
    headers = auth_header("user-ana", "ana@example.com")
    res = client.post(f"/elections/{election.id}/vote", headers=headers, json=vote_body(election))
    assert res.status_code == 201
    body = res.get_json()
    assert body["vote_count"] == 2
    assert body["ballot_id"]

    again = client.post(f"/elections/{election.id}/vote", headers=headers, json=vote_body(election, "bob"))
    assert again.status_code == 409
    assert again.get_json()["error"] == "already_voted"

    page = client.get("/elections/sc-2024", headers=headers).get_json()
    assert page["has_voted"] is True
    assert page["is_voting_open"] is True


def test_vote_needs_a_token(client, election, clock):
    res = client.post(f"/elections/{election.id}/vote", json=vote_body(election))
    assert res.status_code == 401
    assert res.get_json()["error"] == "missing_token"


def test_vote_outside_the_window(client, election, auth_header, clock):
    clock(AFTER)
    res = client.post(f"/elections/{election.id}/vote", headers=auth_header("user-ana", "ana@example.com"),
                      json={"votes": "garbage"})
    assert res.status_code == 403
    assert res.get_json()["error"] == "not_ongoing"


def test_vote_by_stranger(client, election, auth_header, clock):
    res = client.post(f"/elections/{election.id}/vote", headers=auth_header("user-x", "x@example.com"),
                      json=vote_body(election))
    assert res.status_code == 403
    assert res.get_json()["error"] == "unauthorized"


def test_vote_in_unknown_election(client, auth_header, clock):
    res = client.post("/elections/not-an-id/vote", headers=auth_header("user-ana", "ana@example.com"), json={})
    assert res.status_code == 404
    assert res.get_json()["error"] == "not_found"


def test_live_results_are_masked(client, election, auth_header, clock):
    client.post(f"/elections/{election.id}/vote", headers=auth_header("user-ana", "ana@example.com"),
                json=vote_body(election, "bob"))
    results = client.get("/elections/sc-2024/results").get_json()
    top = results["positions"][0]["candidates"][0]
    assert top["display_name"] == "Candidate 1"
    assert top["vote_count"] == 1
    assert top["last_name"] == ""

    clock(AFTER)
    results = client.get("/elections/sc-2024/results").get_json()
    assert results["positions"][0]["candidates"][0]["display_name"] == "Bob Cruz"


def test_final_results(client, election, auth_header, clock):
    headers = auth_header(COMMISSIONER)
    early = client.post(f"/elections/{election.id}/results", headers=headers)
    assert early.status_code == 409

    clock(AFTER)
    assert client.get("/elections/sc-2024/results/final").status_code == 404
    res = client.post(f"/elections/{election.id}/results", headers=headers)
    assert res.status_code == 201
    final = client.get("/elections/sc-2024/results/final")
    assert final.status_code == 200
    assert final.get_json() == res.get_json()["results"]
    assert client.post(f"/elections/{election.id}/results", headers=headers).status_code == 409


def test_only_commissioners_manage(client, election, auth_header, store):
    res = client.post(f"/elections/{election.id}/voters", headers=auth_header("user-ana", "ana@example.com"),
                      json={"email": "new@example.com"})
    assert res.status_code == 403
    assert res.get_json()["error"] == "unauthorized"
    assert store.audit_logs.find_one({"action": "unauthorized_access_attempt"}) is not None

    res = client.post(f"/elections/{election.id}/voters", headers=auth_header(COMMISSIONER),
                      json={"email": "new@example.com"})
    assert res.status_code == 201
    voters = client.get(f"/elections/{election.id}/voters", headers=auth_header(COMMISSIONER)).get_json()["voters"]
    assert "new@example.com" in [v["email"] for v in voters]


def test_partylist_and_candidate_crud(client, election, auth_header):
    headers = auth_header(COMMISSIONER)
    party = client.post(f"/elections/{election.id}/partylists", headers=headers,
                        json={"name": "Alliance", "acronym": "ALL"}).get_json()["partylist"]
    cand = client.post(f"/elections/{election.id}/candidates", headers=headers, json={
        "slug": "gina", "first_name": "Gina", "last_name": "Ong",
        "position_id": str(election.senator["_id"]), "partylist_id": party["id"],
    })
    assert cand.status_code == 201
    cid = cand.get_json()["candidate"]["id"]

    edited = client.put(f"/elections/{election.id}/candidates/{cid}", headers=headers, json={"first_name": "Georgina"})
    assert edited.get_json()["candidate"]["first_name"] == "Georgina"
    assert client.delete(f"/elections/{election.id}/candidates/{cid}", headers=headers).status_code == 200
    assert client.delete(f"/elections/{election.id}/candidates/{cid}", headers=headers).status_code == 404

    ind = str(election.independent["_id"])
    res = client.delete(f"/elections/{election.id}/partylists/{ind}", headers=headers)
    assert res.status_code == 409


def test_audit_logs_are_scoped_to_the_election(client, election, auth_header, store):
    seed_election(store, slug="other-2024")
    logs = client.get(f"/elections/{election.id}/audit_logs", headers=auth_header(COMMISSIONER)).get_json()
    ids = {entry["details"].get("election_id") for entry in logs["audit_logs"]}
    assert ids == {str(election.id)}


def test_private_election_is_hidden(client, store, auth_header, clock):
    seed_election(store, slug="secret-2024", publicity="PRIVATE")
    assert client.get("/elections/secret-2024").status_code == 404
    assert client.get("/elections/secret-2024/results").status_code == 404
    res = client.get("/elections/secret-2024", headers=auth_header(COMMISSIONER))
    assert res.status_code == 200


def test_voter_only_election(client, store, auth_header, clock):
    seed_election(store, slug="members-2024", publicity="VOTER")
    assert client.get("/elections/members-2024").status_code == 403
    res = client.get("/elections/members-2024", headers=auth_header("user-ana", "ana@example.com"))
    assert res.status_code == 200
    assert res.get_json()["is_voter"] is True
