"""
Workflow template HTTP API.

Test blocks:
  1. Workflow CRUD + duplicate
  2. Phase routes + reorder
  3. Task routes + batch
  4. Dependency routes
  5. Error envelope and request guards
"""

import pytest

from wrapflow.models.workflow import TaskDependency, Workflow


@pytest.fixture()
def h(admin, auth_headers):
    return auth_headers(admin)


# ── 1. Workflows ─────────────────────────────────────────────────────────


def test_workflow_crud_happy_path(client, h):
    create_res = client.post("/api/v1/workflows", json={
        "name": "Standard Wrap", "description": "Vehicle wrap template",
    }, headers=h)
    assert create_res.status_code == 201
    wf = create_res.get_json()
    assert wf["version"] == "1.0"
    assert wf["phase_count"] == 0

    list_res = client.get("/api/v1/workflows", headers=h)
    assert list_res.status_code == 200
    assert list_res.get_json()["total"] == 1

    get_res = client.get(f"/api/v1/workflows/{wf['id']}", headers=h)
    assert get_res.status_code == 200
    assert get_res.get_json()["phases"] == []
    assert get_res.get_json()["dependencies"] == []

    upd_res = client.put(f"/api/v1/workflows/{wf['id']}", json={"version": "1.1"}, headers=h)
    assert upd_res.status_code == 200
    assert upd_res.get_json()["version"] == "1.1"

    del_res = client.delete(f"/api/v1/workflows/{wf['id']}", headers=h)
    assert del_res.status_code == 204

    miss_res = client.get(f"/api/v1/workflows/{wf['id']}", headers=h)
    assert miss_res.status_code == 404
    assert miss_res.get_json()["code"] == "ERR_NOT_FOUND"


def test_create_duplicate_name_409(client, h, make_workflow):
    make_workflow("Standard Wrap")
    res = client.post("/api/v1/workflows", json={"name": "Standard Wrap"}, headers=h)
    assert res.status_code == 409
    body = res.get_json()
    assert body["code"] == "ERR_CONFLICT_DUPLICATE"
    assert body["details"]["names"] == ["Standard Wrap"]


def test_create_invalid_payload_400(client, h):
    res = client.post("/api/v1/workflows", json={"name": ""}, headers=h)
    assert res.status_code == 400
    body = res.get_json()
    assert body["code"] == "ERR_VALIDATION_INVALID"
    assert "name" in body["details"]


def test_duplicate_endpoint(client, h, wrap_template, make_edge):
    tasks = wrap_template["tasks"]
    make_edge(tasks["Marketing Sign Off"], tasks["Design Kickoff"])
    wf_id = wrap_template["workflow"].id

    res = client.post(f"/api/v1/workflows/{wf_id}/duplicate",
                      json={"name": "Standard Wrap Copy"}, headers=h)
    assert res.status_code == 201
    body = res.get_json()
    assert body["name"] == "Standard Wrap Copy"
    assert body["id"] != wf_id
    assert [p["name"] for p in body["phases"]] == ["Marketing", "Design", "Installation"]
    assert sum(len(p["tasks"]) for p in body["phases"]) == 6
    assert len(body["dependencies"]) == 1

    copy_task_ids = {t["id"] for p in body["phases"] for t in p["tasks"]}
    edge = body["dependencies"][0]
    assert {edge["source_task_id"], edge["target_task_id"]} <= copy_task_ids


def test_duplicate_endpoint_name_taken(client, h, wrap_template):
    wf_id = wrap_template["workflow"].id
    res = client.post(f"/api/v1/workflows/{wf_id}/duplicate",
                      json={"name": "Standard Wrap"}, headers=h)
    assert res.status_code == 409
    assert Workflow.query.count() == 1


def test_batch_workflow_routes(client, h, make_workflow):
    a = make_workflow("Car Wrap")
    b = make_workflow("Van Wrap")

    put_res = client.put("/api/v1/workflows/batch", json={"items": [
        {"id": a.id, "name": "Car Wrap v2"},
        {"id": b.id, "name": "Van Wrap v2"},
    ]}, headers=h)
    assert put_res.status_code == 200
    assert put_res.get_json()["total"] == 2

    patch_res = client.patch("/api/v1/workflows/batch", json={
        "ids": [a.id, b.id], "data": {"is_active": False},
    }, headers=h)
    assert patch_res.status_code == 200
    assert all(w["is_active"] is False for w in patch_res.get_json()["items"])

    del_res = client.delete("/api/v1/workflows/batch", json={"ids": [a.id, b.id]}, headers=h)
    assert del_res.status_code == 200
    assert del_res.get_json()["deleted"] == 2


def test_delete_workflow_with_live_project_409(client, h, wrap_template, make_live_project):
    make_live_project(wrap_template["workflow"])
    res = client.delete(f"/api/v1/workflows/{wrap_template['workflow'].id}", headers=h)
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_LIVE_REFERENCES"


# ── 2. Phases ────────────────────────────────────────────────────────────


def test_phase_routes(client, h, wrap_template):
    wf_id = wrap_template["workflow"].id

    list_res = client.get(f"/api/v1/workflows/{wf_id}/phases", headers=h)
    assert [p["order"] for p in list_res.get_json()["items"]] == [1, 2, 3]

    create_res = client.post(f"/api/v1/workflows/{wf_id}/phases",
                             json={"name": "Billing", "estimated_duration": 2}, headers=h)
    assert create_res.status_code == 201
    phase = create_res.get_json()
    assert phase["order"] == 4

    get_res = client.get(f"/api/v1/phases/{phase['id']}", headers=h)
    assert get_res.get_json()["tasks"] == []

    upd_res = client.put(f"/api/v1/phases/{phase['id']}", json={"name": "Invoicing"}, headers=h)
    assert upd_res.get_json()["name"] == "Invoicing"

    assert client.delete(f"/api/v1/phases/{phase['id']}", headers=h).status_code == 204


def test_phase_on_inactive_workflow_409(client, h, make_workflow):
    wf = make_workflow("Old Wrap", is_active=False)
    res = client.post(f"/api/v1/workflows/{wf.id}/phases", json={"name": "Design"}, headers=h)
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_WORKFLOW_INACTIVE"


def test_reorder_route(client, h, wrap_template):
    wf_id = wrap_template["workflow"].id
    marketing, design, installation = wrap_template["phases"]
    res = client.patch("/api/v1/phases/batch", json={
        "workflow_id": wf_id,
        "phases": [
            {"id": installation.id, "order": 1},
            {"id": marketing.id, "order": 2},
            {"id": design.id, "order": 3},
        ],
    }, headers=h)
    assert res.status_code == 200
    assert [p["name"] for p in res.get_json()["items"]] == ["Installation", "Marketing", "Design"]


def test_reorder_route_duplicate_order_400(client, h, wrap_template):
    wf_id = wrap_template["workflow"].id
    marketing, design, _ = wrap_template["phases"]
    res = client.patch("/api/v1/phases/batch", json={
        "workflow_id": wf_id,
        "phases": [{"id": marketing.id, "order": 2}, {"id": design.id, "order": 2}],
    }, headers=h)
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_DUPLICATE_ORDER"

    orders = client.get(f"/api/v1/workflows/{wf_id}/phases", headers=h).get_json()["items"]
    assert [(p["name"], p["order"]) for p in orders] == [
        ("Marketing", 1), ("Design", 2), ("Installation", 3),
    ]


def test_phase_batch_update_and_delete(client, h, wrap_template):
    marketing, design, _ = wrap_template["phases"]
    marketing_id = marketing.id
    put_res = client.put("/api/v1/phases/batch", json={"items": [
        {"id": marketing.id, "name": "Sales", "order": 1},
        {"id": design.id, "name": "Artwork", "order": 2},
    ]}, headers=h)
    assert put_res.status_code == 200

    del_res = client.delete("/api/v1/phases/batch", json={"ids": [marketing_id]}, headers=h)
    assert del_res.status_code == 200
    assert del_res.get_json() == {"deleted": 1, "ids": [marketing_id]}


def test_delete_phase_with_live_phase_409(client, h, wrap_template, make_live_project):
    design = wrap_template["phases"][1]
    make_live_project(wrap_template["workflow"], phases=[design])
    res = client.delete(f"/api/v1/phases/{design.id}", headers=h)
    assert res.status_code == 409
    assert res.get_json()["details"]["reason"] == "active project phases"


# ── 3. Tasks ─────────────────────────────────────────────────────────────


def test_task_routes(client, h, wrap_template):
    design = wrap_template["phases"][1]

    create_res = client.post(f"/api/v1/phases/{design.id}/tasks", json={
        "name": "Proof", "estimated_hours": 2, "required_skills": ["illustrator"],
    }, headers=h)
    assert create_res.status_code == 201
    task = create_res.get_json()
    assert task["priority"] == "MEDIUM"

    list_res = client.get(f"/api/v1/phases/{design.id}/tasks", headers=h)
    assert list_res.get_json()["total"] == 3

    get_res = client.get(f"/api/v1/tasks/{task['id']}", headers=h)
    assert get_res.get_json()["depends_on"] == []

    upd_res = client.put(f"/api/v1/tasks/{task['id']}", json={"priority": "CRITICAL"}, headers=h)
    assert upd_res.get_json()["priority"] == "CRITICAL"

    assert client.delete(f"/api/v1/tasks/{task['id']}", headers=h).status_code == 204


def test_task_batch_routes(client, h, wrap_template):
    design = wrap_template["phases"][1]
    create_res = client.post(f"/api/v1/phases/{design.id}/tasks/batch", json={"items": [
        {"name": "Proof"}, {"name": "Revise"},
    ]}, headers=h)
    assert create_res.status_code == 201
    ids = [t["id"] for t in create_res.get_json()["items"]]

    put_res = client.put("/api/v1/tasks/batch", json={"items": [
        {"id": ids[0], "name": "Proof v2", "estimated_hours": 4},
    ]}, headers=h)
    assert put_res.status_code == 200
    assert put_res.get_json()["items"][0]["estimated_hours"] == 4.0

    del_res = client.delete("/api/v1/tasks/batch", json={"ids": ids}, headers=h)
    assert del_res.get_json()["deleted"] == 2


# ── 4. Dependencies ──────────────────────────────────────────────────────


def test_dependency_routes(client, h, wrap_template):
    tasks = wrap_template["tasks"]
    a, b = tasks["Design Kickoff"], tasks["Design Sign Off"]

    add_res = client.post(f"/api/v1/tasks/{a.id}/dependencies",
                          json={"target_task_id": b.id}, headers=h)
    assert add_res.status_code == 201
    dep = add_res.get_json()
    assert dep["dependency_type"] == "FINISH_TO_START"

    list_res = client.get(f"/api/v1/tasks/{b.id}/dependencies", headers=h)
    assert [d["source_task_id"] for d in list_res.get_json()["depends_on"]] == [a.id]

    reverse = client.post(f"/api/v1/tasks/{b.id}/dependencies",
                          json={"target_task_id": a.id}, headers=h)
    assert reverse.status_code == 409
    assert reverse.get_json()["code"] == "ERR_CIRCULAR_DEPENDENCY"

    again = client.post(f"/api/v1/tasks/{a.id}/dependencies",
                        json={"target_task_id": b.id}, headers=h)
    assert again.status_code == 409
    assert again.get_json()["code"] == "ERR_DUPLICATE_EDGE"

    assert client.delete(f"/api/v1/dependencies/{dep['id']}", headers=h).status_code == 204
    assert TaskDependency.query.count() == 0


def test_dependency_bulk_and_replace_routes(client, h, wrap_template):
    tasks = wrap_template["tasks"]
    m, d, i = tasks["Marketing Kickoff"], tasks["Design Kickoff"], tasks["Installation Kickoff"]
    wf_id = wrap_template["workflow"].id

    bulk = client.post("/api/v1/dependencies/batch", json={"dependencies": [
        {"source_task_id": m.id, "target_task_id": d.id},
        {"source_task_id": d.id, "target_task_id": i.id, "dependency_type": "START_TO_START"},
    ]}, headers=h)
    assert bulk.status_code == 201
    assert bulk.get_json()["total"] == 2

    replace = client.put(f"/api/v1/workflows/{wf_id}/dependencies", json={"dependencies": [
        {"source_task_id": m.id, "target_task_id": i.id},
    ]}, headers=h)
    assert replace.status_code == 200
    assert replace.get_json()["total"] == 1
    assert TaskDependency.query.count() == 1

    missing = client.put(f"/api/v1/workflows/{wf_id}/dependencies", json={}, headers=h)
    assert missing.status_code == 400
    assert TaskDependency.query.count() == 1

    cleared = client.put(f"/api/v1/workflows/{wf_id}/dependencies",
                         json={"dependencies": []}, headers=h)
    assert cleared.status_code == 200
    assert TaskDependency.query.count() == 0


def test_scoped_replace_route_keeps_other_edges(client, h, wrap_template, make_edge):
    tasks = wrap_template["tasks"]
    m1, m2 = tasks["Marketing Kickoff"], tasks["Marketing Sign Off"]
    d1, d2 = tasks["Design Kickoff"], tasks["Design Sign Off"]
    make_edge(m1, m2)
    m1_id, m2_id, d1_id, d2_id = m1.id, m2.id, d1.id, d2.id

    res = client.put(f"/api/v1/workflows/{wrap_template['workflow'].id}/dependencies", json={
        "dependencies": [{"source_task_id": d1_id, "target_task_id": d2_id}],
        "task_ids": [d1_id, d2_id],
    }, headers=h)
    assert res.status_code == 200
    assert res.get_json()["total"] == 1
    pairs = {(d.source_task_id, d.target_task_id) for d in TaskDependency.query.all()}
    assert pairs == {(m1_id, m2_id), (d1_id, d2_id)}


def test_staff_cannot_add_dependency(client, staff, auth_headers, wrap_template):
    tasks = wrap_template["tasks"]
    res = client.post(f"/api/v1/tasks/{tasks['Design Kickoff'].id}/dependencies",
                      json={"target_task_id": tasks["Design Sign Off"].id},
                      headers=auth_headers(staff))
    assert res.status_code == 403


# ── 5. Envelope & guards ─────────────────────────────────────────────────


def test_non_json_body_415(client, h):
    res = client.post("/api/v1/workflows", data="name=x",
                      headers={**h, "Content-Type": "text/plain"})
    assert res.status_code == 415


def test_unknown_route_404(client, h):
    res = client.get("/api/v1/nothing-here", headers=h)
    assert res.status_code == 404


def test_request_id_header(client, h):
    res = client.get("/api/v1/workflows", headers={**h, "X-Request-ID": "abc-123"})
    assert res.headers["X-Request-ID"] == "abc-123"
    assert "X-Request-Duration-Ms" in res.headers


@pytest.mark.parametrize("payload", [[1, 2], "items", 42])
def test_non_object_json_body_400(client, h, payload):
    res = client.put("/api/v1/tasks/batch", json=payload, headers=h)
    assert res.status_code == 400
    body = res.get_json()
    assert body["code"] == "ERR_VALIDATION_INVALID"
    assert body["details"] == {"body": "must be a JSON object"}
