"""
Workflow duplication: deep copy of phases, tasks and dependency edges.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from wrapflow.core.exceptions import (
    DuplicateNameError,
    InsufficientPermissionsError,
    NotFoundError,
    TransactionFailureError,
    ValidationError,
)
from wrapflow.models import db as _db
from wrapflow.models.workflow import TaskDependency, Workflow, WorkflowPhase, WorkflowTask
from wrapflow.services.duplication_service import duplicate_workflow


def _structure(workflow):
    """{phase name: (order, duration, {task names})} for a workflow."""
    return {
        p.name: (p.order, p.estimated_duration, {t.name for t in p.tasks})
        for p in workflow.phases
    }


def _named_edges(workflow):
    names = {}
    for phase in workflow.phases:
        for task in phase.tasks:
            names[task.id] = task.name
    return {
        (names[e.source_task_id], names[e.target_task_id], e.dependency_type)
        for e in workflow.dependency_edges()
    }


@pytest.fixture()
def wired_template(wrap_template, make_edge):
    tasks = wrap_template["tasks"]
    make_edge(tasks["Marketing Kickoff"], tasks["Marketing Sign Off"])
    make_edge(tasks["Marketing Sign Off"], tasks["Design Kickoff"], "START_TO_START")
    make_edge(tasks["Design Sign Off"], tasks["Installation Kickoff"])
    tasks["Design Kickoff"].required_skills = ["vinyl", "illustrator"]
    tasks["Design Kickoff"].form_template = {"fields": [{"label": "Colour"}]}
    tasks["Design Kickoff"].priority = "HIGH"
    _db.session.commit()
    return wrap_template


def test_duplicate_copies_whole_structure(admin_p, wired_template):
    source = wired_template["workflow"]
    copy = duplicate_workflow(admin_p, source.id, "Standard Wrap Copy")

    assert copy.id != source.id
    assert copy.name == "Standard Wrap Copy"
    assert copy.description == source.description
    assert copy.version == source.version
    assert copy.is_active is True
    assert copy.created_by_id == admin_p.user_id
    assert _structure(copy) == _structure(source)
    assert [p.order for p in copy.phases] == [1, 2, 3]


def test_duplicate_translates_edges(admin_p, wired_template):
    source = wired_template["workflow"]
    copy = duplicate_workflow(admin_p, source.id, "Standard Wrap Copy")

    assert _named_edges(copy) == _named_edges(source)
    assert len(_named_edges(copy)) == 3

    copy_task_ids = {t.id for p in copy.phases for t in p.tasks}
    for edge in copy.dependency_edges():
        assert edge.source_task_id in copy_task_ids
        assert edge.target_task_id in copy_task_ids
    assert TaskDependency.query.count() == 6


def test_duplicate_leaves_source_untouched(admin_p, wired_template):
    source = wired_template["workflow"]
    before = (_structure(source), _named_edges(source))
    duplicate_workflow(admin_p, source.id, "Standard Wrap Copy")
    _db.session.expire_all()
    assert (_structure(source), _named_edges(source)) == before


def test_duplicate_copies_task_payloads(admin_p, wired_template):
    source_task = wired_template["tasks"]["Design Kickoff"]
    copy = duplicate_workflow(admin_p, wired_template["workflow"].id, "Standard Wrap Copy")

    design = next(p for p in copy.phases if p.name == "Design")
    task = next(t for t in design.tasks if t.name == "Design Kickoff")
    assert task.id != source_task.id
    assert task.priority == "HIGH"
    assert task.required_skills == ["vinyl", "illustrator"]
    assert task.form_template == {"fields": [{"label": "Colour"}]}


def test_duplicate_overrides(manager_p, wired_template):
    copy = duplicate_workflow(
        manager_p, wired_template["workflow"].id, "Fleet Wrap",
        description="Fleet variant", version="2.0", is_active=False,
    )
    assert (copy.description, copy.version, copy.is_active) == ("Fleet variant", "2.0", False)


def test_duplicate_without_dependencies(admin_p, wired_template):
    copy = duplicate_workflow(
        admin_p, wired_template["workflow"].id, "Standard Wrap Copy", include_dependencies=False,
    )
    assert copy.dependency_edges() == []
    assert _structure(copy) == _structure(wired_template["workflow"])


def test_duplicate_empty_workflow(admin_p, make_workflow):
    source = make_workflow("Blank")
    copy = duplicate_workflow(admin_p, source.id, "Blank Copy")
    assert copy.phases.count() == 0


def test_duplicate_name_taken(admin_p, wired_template):
    with pytest.raises(DuplicateNameError):
        duplicate_workflow(admin_p, wired_template["workflow"].id, "Standard Wrap")
    assert Workflow.query.count() == 1


def test_duplicate_missing_source(admin_p):
    with pytest.raises(NotFoundError):
        duplicate_workflow(admin_p, "missing", "Copy")


def test_duplicate_blank_name(admin_p, wired_template):
    with pytest.raises(ValidationError):
        duplicate_workflow(admin_p, wired_template["workflow"].id, "  ")


def test_duplicate_requires_mutating_role(staff_p, wired_template):
    with pytest.raises(InsufficientPermissionsError):
        duplicate_workflow(staff_p, wired_template["workflow"].id, "Copy")


def test_duplicate_store_failure_persists_nothing(admin_p, wired_template, monkeypatch):
    counts = (
        Workflow.query.count(), WorkflowPhase.query.count(),
        WorkflowTask.query.count(), TaskDependency.query.count(),
    )

    original_add = _db.session.add

    def failing_add(obj, *args, **kwargs):
        if isinstance(obj, TaskDependency):
            raise IntegrityError("INSERT", {}, Exception("simulated failure"))
        return original_add(obj, *args, **kwargs)

    monkeypatch.setattr(_db.session, "add", failing_add)
    with pytest.raises(TransactionFailureError):
        duplicate_workflow(admin_p, wired_template["workflow"].id, "Standard Wrap Copy")
    monkeypatch.undo()

    assert (
        Workflow.query.count(), WorkflowPhase.query.count(),
        WorkflowTask.query.count(), TaskDependency.query.count(),
    ) == counts
