import notify

HDR = {"X-API-Key": "test-key"}

def _company(client, name="Acme"):
    r = client.post("/admin/companies", json={"name": name}, headers=HDR)
    assert r.status_code == 201, r.text
    return r.json()["id"]

def test_create_update_and_soft_delete_survey(client):
    cid = _company(client)
    r = client.post("/admin/surveys", json={"company_id": cid, "title": "NPS", "description": "d"}, headers=HDR)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["status"] == "active"
    sid = body["id"]

    # same title for the same company clashes
    dup = client.post("/admin/surveys", json={"company_id": cid, "title": "NPS"}, headers=HDR)
    assert dup.status_code == 409

    r2 = client.put(f"/admin/surveys/{sid}", json={"status": "completed", "description": "new"}, headers=HDR)
    assert r2.status_code == 200, r2.text
    assert r2.json()["status"] == "completed"
    assert r2.json()["description"] == "new"

    assert client.delete(f"/admin/surveys/{sid}", headers=HDR).status_code == 200
    assert all(s["id"] != sid for s in client.get("/surveys").json())
    assert client.put(f"/admin/surveys/{sid}", json={"title": "x"}, headers=HDR).status_code == 404

    # the title is free again once the old survey is deleted
    again = client.post("/admin/surveys", json={"company_id": cid, "title": "NPS"}, headers=HDR)
    assert again.status_code == 201

def test_unknown_company(client):
    r = client.post("/admin/surveys", json={"company_id": 12345, "title": "Lost"}, headers=HDR)
    assert r.status_code == 404

def test_process_endpoint_end_to_end(client):
    cid = _company(client, "C")
    for name in ("Ana", "Ben"):
        assert client.post("/admin/users", json={"name": name, "email": f"{name.lower()}@example.com"},
                           headers=HDR).status_code == 201
    sid = client.post("/admin/surveys", json={"company_id": cid, "title": "S"}, headers=HDR).json()["id"]
    for i in range(3):
        r = client.post(f"/surveys/{sid}/responses",
                        json={"participant_email": f"p{i}@example.com", "response_text": f"answer {i}"})
        assert r.status_code == 201, r.text
    client.put(f"/admin/surveys/{sid}", json={"status": "completed"}, headers=HDR)

    r = client.post("/admin/summaries/process", json={}, headers=HDR)
    assert r.status_code == 200, r.text
    report = r.json()
    assert report["outcome"] == "success"
    assert report["surveys_found"] == 1
    assert report["batches_dispatched"] == 1
    assert report["batches"][0]["survey_ids"] == [sid]

    summary = client.get(f"/admin/surveys/{sid}/summary", headers=HDR)
    assert summary.status_code == 200
    assert summary.json()["sentiment"] == "positive"
    assert summary.json()["topics"] == ["pricing", "support", "onboarding"]

    assert sorted(to for to, _, _ in notify.EMAIL_OUTBOX) == ["ana@example.com", "ben@example.com"]

    jobs = client.get("/admin/summary-jobs", params={"survey_id": sid}, headers=HDR).json()
    assert [j["state"] for j in jobs] == ["succeeded"]

    # nothing left to do without force
    again = client.post("/admin/summaries/process", json={}, headers=HDR).json()
    assert again["surveys_found"] == 0 and again["outcome"] == "success"

def test_process_rejects_bad_batch_size(client):
    r = client.post("/admin/summaries/process", json={"batch_size": 0}, headers=HDR)
    assert r.status_code == 422

def test_summary_missing(client):
    cid = _company(client)
    sid = client.post("/admin/surveys", json={"company_id": cid, "title": "Empty"}, headers=HDR).json()["id"]
    assert client.get(f"/admin/surveys/{sid}/summary", headers=HDR).status_code == 404

def test_duplicate_user_email(client):
    payload = {"name": "Ana", "email": "ana@example.com"}
    assert client.post("/admin/users", json=payload, headers=HDR).status_code == 201
    assert client.post("/admin/users", json=payload, headers=HDR).status_code == 409
