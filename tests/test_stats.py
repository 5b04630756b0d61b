from controllers.analytics import bucket_counts


def test_bucket_counts_overflow():
    assert bucket_counts([0, 1, 1, 2, 3, 7], 2) == [
        {"range": "0", "count": 1},
        {"range": "1", "count": 2},
        {"range": "2", "count": 1},
        {"range": ">2", "count": 2},
    ]


def test_bucket_counts_empty():
    assert bucket_counts([], 1) == [
        {"range": "0", "count": 0},
        {"range": "1", "count": 0},
        {"range": ">1", "count": 0},
    ]


#########################
# Case statistics
#########################
def test_dashboard_requires_admin(api):
    headers, _ = api.student()
    assert api.client.get("/api/v1/stats/dashboard", headers=headers).status_code == 403


def test_dashboard_stats(api):
    admin = api.admin()
    headers, _ = api.student()
    api.student()
    first = api.create_case(headers, category="fixed").json()["case"]
    api.create_case(headers, category="fixed")
    api.create_case(headers, category="implant")
    api.client.patch(
        f"/api/v1/cases/{first['case_id']}/status", json={"status": "complete"}, headers=headers
    )

    r = api.client.get("/api/v1/stats/dashboard", headers=admin)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["total_cases"] == 3
    assert body["total_students"] == 2
    per_category = {item["category"]: item["count"] for item in body["cases_per_category"]}
    assert per_category == {"removable": 0, "fixed": 2, "implant": 1, "implant_surgery": 0}
    averages = {item["category"]: item["average"] for item in body["average_cases_per_category"]}
    assert averages["fixed"] == 1.0
    statuses = {item["status"]: item["count"] for item in body["case_status_distribution"]}
    assert statuses == {"in_progress": 2, "complete": 1, "failed": 0}
    assert body["student_distribution"] == [
        {"range": "0", "count": 1},
        {"range": "1", "count": 0},
        {"range": "2", "count": 0},
        {"range": ">2", "count": 1},
    ]
    assert body["recent_activity"] == 3


def test_category_distribution(api):
    headers, _ = api.student()
    other_headers, _ = api.student()
    api.create_case(headers, category="removable")
    api.create_case(headers, category="removable")
    api.create_case(other_headers, category="removable")

    r = api.client.get("/api/v1/stats/categories", headers=headers)
    assert r.status_code == 200, r.text
    removable = next(c for c in r.json()["categories"] if c["category"] == "removable")
    assert removable["total_cases"] == 3
    assert removable["assigned_cases"] == 3
    assert removable["average_per_student"] == 1.5
    assert removable["students"] == [
        {"range": "0", "count": 0},
        {"range": "1", "count": 1},
        {"range": "2", "count": 1},
        {"range": ">2", "count": 0},
    ]


def test_sync_all_counts(api, db_session):
    from models.user import User

    admin = api.admin()
    headers, user = api.student()
    api.create_case(headers, category="fixed")
    db_session.query(User).filter_by(user_id=user["user_id"]).update(
        {"case_count_fixed": 0, "total_cases": 0}
    )
    db_session.commit()

    r = api.client.post("/api/v1/stats/sync", headers=admin)
    assert r.status_code == 200, r.text
    assert r.json()["synced"] == 1
    stats = api.client.get(f"/api/v1/stats/students/{user['user_id']}", headers=admin)
    assert stats.json()["student"]["fixed"] == 1
    assert stats.json()["student"]["total"] == 1


def test_sync_one_count_unknown_student(api):
    admin = api.admin()
    r = api.client.post("/api/v1/stats/sync/nobody", headers=admin)
    assert r.status_code == 404


#########################
# Charting progress
#########################
def test_charting_defaults_to_zero(api):
    headers, user = api.student()
    r = api.client.get("/api/v1/charting/me", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["progress"] == {
        "user_id": user["user_id"],
        "charting_count": 0,
        "diagnosis_total_count": 0,
    }


def test_charting_save_and_update(api):
    headers, _ = api.student()
    r = api.client.put(
        "/api/v1/charting/me",
        json={"charting_count": 4, "diagnosis_total_count": 1},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    r = api.client.put(
        "/api/v1/charting/me",
        json={"charting_count": 5, "diagnosis_total_count": 2},
        headers=headers,
    )
    progress = api.client.get("/api/v1/charting/me", headers=headers).json()["progress"]
    assert progress["charting_count"] == 5
    assert progress["diagnosis_total_count"] == 2


def test_charting_rejects_negative(api):
    headers, _ = api.student()
    r = api.client.put(
        "/api/v1/charting/me",
        json={"charting_count": -1, "diagnosis_total_count": 0},
        headers=headers,
    )
    assert r.status_code == 422


def test_charting_stats(api):
    admin = api.admin()
    busy, _ = api.student()
    api.student()
    api.client.put(
        "/api/v1/charting/me",
        json={"charting_count": 12, "diagnosis_total_count": 2},
        headers=busy,
    )

    r = api.client.get("/api/v1/charting/stats", headers=admin)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["student_count"] == 2
    assert body["total_charting"] == 12
    assert body["average_charting"] == 6.0
    assert body["average_diagnosis"] == 1.0
    assert body["charting_distribution"][0] == {"range": "0", "count": 1}
    assert body["charting_distribution"][-1] == {"range": ">10", "count": 1}
    assert len(body["charting_distribution"]) == 12
    assert body["diagnosis_distribution"] == [
        {"range": "0", "count": 1},
        {"range": "1", "count": 0},
        {"range": "2", "count": 1},
        {"range": ">2", "count": 0},
    ]
