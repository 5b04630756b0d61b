def _stats(api, headers):
    students = api.client.get("/api/v1/stats/students", headers=headers).json()["students"]
    return {s["student_id"]: s for s in students}


#########################
# Transfer
#########################
def test_transfer_case(api):
    headers, me = api.student()
    _, target = api.student()
    case = api.create_case(headers, category="implant").json()["case"]

    r = api.client.post(
        "/api/v1/cases/transfer",
        json={"case_id": case["case_id"], "to_student_id": target["user_id"], "note": "schedule"},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    moved = r.json()["case"]
    assert moved["assigned_student1"] == target["user_id"]
    entry = moved["change_log"][-1]
    assert entry["action"] == "case_transfer"
    assert entry["from_student_id"] == me["user_id"]
    assert entry["to_student_id"] == target["user_id"]
    assert entry["to_student_name"] == target["name"]
    assert entry["note"] == "schedule"

    stats = _stats(api, headers)
    assert stats[me["user_id"]]["implant"] == 0
    assert stats[target["user_id"]]["implant"] == 1


def test_transfer_requires_assignment(api):
    owner_headers, _ = api.student()
    outsider_headers, _ = api.student()
    _, target = api.student()
    case = api.create_case(owner_headers).json()["case"]
    r = api.client.post(
        "/api/v1/cases/transfer",
        json={"case_id": case["case_id"], "to_student_id": target["user_id"]},
        headers=outsider_headers,
    )
    assert r.status_code == 403


def test_transfer_to_partner_rejected(api):
    headers, _ = api.student()
    _, partner = api.student()
    case = api.create_case(headers, assigned_student2=partner["user_id"]).json()["case"]
    r = api.client.post(
        "/api/v1/cases/transfer",
        json={"case_id": case["case_id"], "to_student_id": partner["user_id"]},
        headers=headers,
    )
    assert r.status_code == 400


def test_transfer_to_self_rejected(api):
    headers, me = api.student()
    case = api.create_case(headers).json()["case"]
    r = api.client.post(
        "/api/v1/cases/transfer",
        json={"case_id": case["case_id"], "to_student_id": me["user_id"]},
        headers=headers,
    )
    assert r.status_code == 400


def test_transfer_completed_case_rejected(api):
    headers, _ = api.student()
    _, target = api.student()
    case = api.create_case(headers).json()["case"]
    api.client.patch(
        f"/api/v1/cases/{case['case_id']}/status", json={"status": "complete"}, headers=headers
    )
    r = api.client.post(
        "/api/v1/cases/transfer",
        json={"case_id": case["case_id"], "to_student_id": target["user_id"]},
        headers=headers,
    )
    assert r.status_code == 400


#########################
# Exchange
#########################
def test_exchange_cases(api):
    my_headers, me = api.student()
    their_headers, other = api.student()
    my_case = api.create_case(my_headers, category="fixed").json()["case"]
    their_case = api.create_case(their_headers, category="removable").json()["case"]

    r = api.client.post(
        "/api/v1/cases/exchange",
        json={
            "my_case_id": my_case["case_id"],
            "their_case_id": their_case["case_id"],
            "student_id": other["user_id"],
        },
        headers=my_headers,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["my_case"]["assigned_student1"] == other["user_id"]
    assert body["their_case"]["assigned_student1"] == me["user_id"]

    out_entry = body["my_case"]["change_log"][-1]
    assert out_entry["action"] == "case_exchange_out"
    assert out_entry["target_case_id"] == their_case["case_id"]
    assert out_entry["target_student_id"] == other["user_id"]
    in_entry = body["their_case"]["change_log"][-1]
    assert in_entry["action"] == "case_exchange_in"
    assert in_entry["source_case_id"] == my_case["case_id"]
    assert in_entry["source_student_id"] == me["user_id"]

    stats = _stats(api, my_headers)
    assert stats[me["user_id"]]["removable"] == 1
    assert stats[me["user_id"]]["fixed"] == 0
    assert stats[other["user_id"]]["fixed"] == 1


def test_exchange_keeps_second_slot(api):
    my_headers, me = api.student()
    their_headers, other = api.student()
    _, partner = api.student()
    my_case = api.create_case(my_headers, assigned_student2=partner["user_id"]).json()["case"]
    their_case = api.create_case(their_headers).json()["case"]

    r = api.client.post(
        "/api/v1/cases/exchange",
        json={
            "my_case_id": my_case["case_id"],
            "their_case_id": their_case["case_id"],
            "student_id": other["user_id"],
        },
        headers=my_headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["my_case"]["assigned_student1"] == other["user_id"]
    assert r.json()["my_case"]["assigned_student2"] == partner["user_id"]


def test_exchange_rejects_duplicate_student(api):
    my_headers, me = api.student()
    their_headers, other = api.student()
    my_case = api.create_case(my_headers, assigned_student2=other["user_id"]).json()["case"]
    their_case = api.create_case(their_headers).json()["case"]

    r = api.client.post(
        "/api/v1/cases/exchange",
        json={
            "my_case_id": my_case["case_id"],
            "their_case_id": their_case["case_id"],
            "student_id": other["user_id"],
        },
        headers=my_headers,
    )
    assert r.status_code == 400

    # Nothing was written
    fetched = api.client.get(f"/api/v1/cases/{my_case['case_id']}", headers=my_headers)
    assert fetched.json()["case"]["assigned_student1"] == me["user_id"]
    assert len(fetched.json()["case"]["change_log"]) == 1


def test_exchange_requires_other_on_their_case(api):
    my_headers, _ = api.student()
    their_headers, _ = api.student()
    _, bystander = api.student()
    my_case = api.create_case(my_headers).json()["case"]
    their_case = api.create_case(their_headers).json()["case"]
    r = api.client.post(
        "/api/v1/cases/exchange",
        json={
            "my_case_id": my_case["case_id"],
            "their_case_id": their_case["case_id"],
            "student_id": bystander["user_id"],
        },
        headers=my_headers,
    )
    assert r.status_code == 400


def test_exchange_same_case_rejected(api):
    my_headers, _ = api.student()
    _, other = api.student()
    my_case = api.create_case(my_headers, assigned_student2=other["user_id"]).json()["case"]
    r = api.client.post(
        "/api/v1/cases/exchange",
        json={
            "my_case_id": my_case["case_id"],
            "their_case_id": my_case["case_id"],
            "student_id": other["user_id"],
        },
        headers=my_headers,
    )
    assert r.status_code == 400


def test_exchange_log_text(api):
    my_headers, me = api.student()
    their_headers, other = api.student()
    my_case = api.create_case(my_headers).json()["case"]
    their_case = api.create_case(their_headers).json()["case"]
    api.client.post(
        "/api/v1/cases/exchange",
        json={
            "my_case_id": my_case["case_id"],
            "their_case_id": their_case["case_id"],
            "student_id": other["user_id"],
        },
        headers=my_headers,
    )
    log = api.client.get(
        f"/api/v1/cases/{their_case['case_id']}/log", headers=my_headers
    ).json()["log"]
    assert log[0]["text"].endswith(f"exchange in <- {me['number']}{me['name']}")


#########################
# Atomicity
#########################
def _failing_append(monkeypatch, fail_on):
    import controllers.case_exchange as case_exchange

    original = case_exchange.append_entry
    calls = []

    def append_entry(case, entry):
        calls.append(entry["action"])
        if len(calls) == fail_on:
            raise RuntimeError("log write failed")
        original(case, entry)

    monkeypatch.setattr(case_exchange, "append_entry", append_entry)
    return calls


def test_transfer_failure_rolls_back(api, monkeypatch):
    headers, me = api.student()
    _, target = api.student()
    case = api.create_case(headers).json()["case"]
    calls = _failing_append(monkeypatch, fail_on=1)

    r = api.client.post(
        "/api/v1/cases/transfer",
        json={"case_id": case["case_id"], "to_student_id": target["user_id"]},
        headers=headers,
    )
    assert r.status_code == 500
    assert calls == ["case_transfer"]

    fetched = api.client.get(f"/api/v1/cases/{case['case_id']}", headers=headers).json()["case"]
    assert fetched["assigned_student1"] == me["user_id"]
    assert len(fetched["change_log"]) == 1


def test_exchange_failure_rolls_back_both_cases(api, monkeypatch):
    my_headers, me = api.student()
    their_headers, other = api.student()
    my_case = api.create_case(my_headers).json()["case"]
    their_case = api.create_case(their_headers).json()["case"]
    calls = _failing_append(monkeypatch, fail_on=2)

    r = api.client.post(
        "/api/v1/cases/exchange",
        json={
            "my_case_id": my_case["case_id"],
            "their_case_id": their_case["case_id"],
            "student_id": other["user_id"],
        },
        headers=my_headers,
    )
    assert r.status_code == 500
    assert calls == ["case_exchange_out", "case_exchange_in"]

    mine = api.client.get(f"/api/v1/cases/{my_case['case_id']}", headers=my_headers).json()["case"]
    theirs = api.client.get(
        f"/api/v1/cases/{their_case['case_id']}", headers=my_headers
    ).json()["case"]
    assert mine["assigned_student1"] == me["user_id"]
    assert theirs["assigned_student1"] == other["user_id"]
    assert len(mine["change_log"]) == 1
    assert len(theirs["change_log"]) == 1
