"""
Batch Mutation Coordinator: all-or-nothing multi-record edits.

Every batch follows the same sequence:
    1. authorize the principal
    2. validate payload shape (1..MAX_BATCH_SIZE items, unique ids)
    3. load every referenced record (NotFoundError lists the missing ids)
    4. run the constraint checks across the whole batch
    5. apply everything inside one ``atomic()`` transaction

A failure in steps 1–4 happens before any write; a store failure in step 5
rolls the whole batch back.

Renames are applied in two steps (placeholder names, flush, final names) so
that swapping names between siblings never trips the unique constraints
mid-flush.

Deletes run in ownership order: dependency edges → tasks → phases →
workflows.
"""

import logging
import uuid

from sqlalchemy import delete, or_, select

from wrapflow.core.exceptions import HasLiveReferencesError, ValidationError
from wrapflow.models import db
from wrapflow.models.workflow import TaskDependency, Workflow, WorkflowPhase, WorkflowTask
from wrapflow.services import constraint_validator as cv
from wrapflow.services import input_validation as iv
from wrapflow.services.helpers.transaction import atomic
from wrapflow.services.permission_gate import authorize

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50


# ── Shared helpers ───────────────────────────────────────────────────────


def _parse_items(items, clean):
    """Validate a batch of ``{id, ...}`` objects; returns ``[(id, fields)]``."""
    items = iv.require_list(items, "items", max_size=MAX_BATCH_SIZE)
    parsed = []
    seen = set()
    for raw in items:
        raw = iv.require_object(raw, "items")
        item_id = iv.require_id(raw.get("id"), "id")
        if item_id in seen:
            raise ValidationError(f"id: duplicate id '{item_id}'", details={"id": f"duplicate id '{item_id}'"})
        seen.add(item_id)
        parsed.append((item_id, clean(raw)))
    return parsed


def _ids(ids):
    return iv.require_id_list(ids, "ids", max_size=MAX_BATCH_SIZE)


def _apply_renames(pairs):
    """``pairs`` is ``[(entity, new_name)]``; only changed names are touched."""
    changing = [(obj, name) for obj, name in pairs if obj.name != name]
    if not changing:
        return
    for obj, _ in changing:
        obj.name = f"__renaming__{uuid.uuid4().hex}"
    db.session.flush()
    for obj, name in changing:
        obj.name = name


def _apply_fields(obj, fields, skip=("name",)):
    for key, value in fields.items():
        if key not in skip:
            setattr(obj, key, value)


def _require_live_free_workflows(workflow_ids):
    live = cv.live_project_ids(workflow_ids)
    if live:
        raise HasLiveReferencesError("Workflow", sorted(live), "active projects")


def _delete_tasks_and_edges(task_ids):
    if not task_ids:
        return 0, 0
    edges = db.session.execute(
        delete(TaskDependency).where(
            or_(
                TaskDependency.source_task_id.in_(task_ids),
                TaskDependency.target_task_id.in_(task_ids),
            )
        ).execution_options(synchronize_session=False)
    ).rowcount
    tasks = db.session.execute(
        delete(WorkflowTask).where(WorkflowTask.id.in_(task_ids))
        .execution_options(synchronize_session=False)
    ).rowcount
    return edges, tasks


def _task_ids_for_phases(phase_ids):
    return list(db.session.execute(
        select(WorkflowTask.id).where(WorkflowTask.phase_id.in_(phase_ids))
    ).scalars())


def compact_phase_orders(workflow_ids):
    """Renumber the remaining phases of each workflow to 1..n, keeping relative order."""
    for workflow_id in workflow_ids:
        phases = db.session.execute(
            select(WorkflowPhase)
            .where(WorkflowPhase.workflow_id == workflow_id)
            .order_by(WorkflowPhase.order, WorkflowPhase.created_at)
        ).scalars().all()
        for position, phase in enumerate(phases, start=1):
            if phase.order != position:
                phase.order = position


# ═════════════════════════════════════════════════════════════════════════════
# Workflows
# ═════════════════════════════════════════════════════════════════════════════


def _clean_workflow_item(raw):
    fields = iv.workflow_fields(raw, partial=True)
    fields["name"] = iv.require_name(raw.get("name"))
    return fields


def batch_update_workflows(principal, items):
    """Update ``{id, name, description?, version?, is_active?}`` items atomically."""
    authorize(principal)
    parsed = _parse_items(items, _clean_workflow_item)
    ids = [item_id for item_id, _ in parsed]

    workflows = cv.load_many(Workflow, ids, "Workflow")
    _require_live_free_workflows(ids)
    cv.names_unique_in_batch("workflow", [(item_id, None, f["name"]) for item_id, f in parsed])

    with atomic("batch_update_workflows"):
        _apply_renames([(wf, f["name"]) for wf, (_, f) in zip(workflows, parsed)])
        for wf, (_, fields) in zip(workflows, parsed):
            _apply_fields(wf, fields)

    logger.info("Workflows batch-updated count=%d by=%s", len(workflows), principal.user_id)
    return workflows


def batch_patch_workflows(principal, ids, data):
    """Apply the same partial ``data`` to every workflow in ``ids``."""
    authorize(principal)
    ids = _ids(ids)
    fields = iv.workflow_fields(data if data is not None else {}, partial=True)
    if not fields:
        raise ValidationError("data: at least one field is required",
                              details={"data": "at least one field is required"})
    if "name" in fields and len(ids) > 1:
        raise ValidationError("name: can only be patched on a single workflow",
                              details={"name": "can only be patched on a single workflow"})

    workflows = cv.load_many(Workflow, ids, "Workflow")
    _require_live_free_workflows(ids)
    if "name" in fields:
        cv.name_unique("workflow", fields["name"], exclude_id=ids[0])

    with atomic("batch_patch_workflows"):
        for wf in workflows:
            _apply_fields(wf, fields, skip=())

    logger.info("Workflows batch-patched count=%d fields=%s by=%s",
                len(workflows), sorted(fields), principal.user_id)
    return workflows


def batch_delete_workflows(principal, ids):
    """Delete workflows and their whole subtree; blocked by live projects."""
    authorize(principal)
    ids = _ids(ids)
    cv.load_many(Workflow, ids, "Workflow")
    _require_live_free_workflows(ids)

    with atomic("batch_delete_workflows"):
        phase_ids = list(db.session.execute(
            select(WorkflowPhase.id).where(WorkflowPhase.workflow_id.in_(ids))
        ).scalars())
        task_ids = _task_ids_for_phases(phase_ids) if phase_ids else []
        edges, tasks = _delete_tasks_and_edges(task_ids)
        if phase_ids:
            db.session.execute(
                delete(WorkflowPhase).where(WorkflowPhase.id.in_(phase_ids))
                .execution_options(synchronize_session=False)
            )
        db.session.execute(
            delete(Workflow).where(Workflow.id.in_(ids))
            .execution_options(synchronize_session=False)
        )

    logger.info("Workflows batch-deleted count=%d phases=%d tasks=%d edges=%d by=%s",
                len(ids), len(phase_ids), tasks, edges, principal.user_id)
    return {"deleted": len(ids), "ids": ids}


# ═════════════════════════════════════════════════════════════════════════════
# Phases
# ═════════════════════════════════════════════════════════════════════════════


def _clean_phase_item(raw):
    fields = iv.phase_fields(raw, partial=True)
    fields["name"] = iv.require_name(raw.get("name"))
    fields["order"] = iv.require_order(raw.get("order"))
    return fields


def _require_no_live_phases(phase_ids):
    live = cv.live_phase_ids(phase_ids)
    if live:
        raise HasLiveReferencesError("Phase", sorted(live), "active project phases")


def batch_update_phases(principal, items):
    """Update ``{id, name, order, description?, estimated_duration?}`` items atomically."""
    authorize(principal)
    parsed = _parse_items(items, _clean_phase_item)
    ids = [item_id for item_id, _ in parsed]

    phases = cv.load_many(WorkflowPhase, ids, "Phase")
    cv.workflows_mutable({p.workflow_id for p in phases})
    _require_no_live_phases(ids)
    cv.names_unique_in_batch(
        "phase", [(p.id, p.workflow_id, f["name"]) for p, (_, f) in zip(phases, parsed)],
    )

    # Validate the final order set of every touched workflow
    proposed = {p.id: f["order"] for p, (_, f) in zip(phases, parsed)}
    for workflow_id in sorted({p.workflow_id for p in phases}):
        current = db.session.execute(
            select(WorkflowPhase.id, WorkflowPhase.order)
            .where(WorkflowPhase.workflow_id == workflow_id)
        ).all()
        final_orders = [proposed.get(pid, order) for pid, order in current]
        cv.order_within_bounds(workflow_id, final_orders, phase_count=len(current))

    with atomic("batch_update_phases"):
        _apply_renames([(p, f["name"]) for p, (_, f) in zip(phases, parsed)])
        for phase, (_, fields) in zip(phases, parsed):
            _apply_fields(phase, fields)

    logger.info("Phases batch-updated count=%d by=%s", len(phases), principal.user_id)
    return phases


def batch_delete_phases(principal, ids):
    """Delete phases with their tasks and edges; remaining orders are compacted."""
    authorize(principal)
    ids = _ids(ids)
    phases = cv.load_many(WorkflowPhase, ids, "Phase")
    workflow_ids = sorted({p.workflow_id for p in phases})
    cv.workflows_mutable(workflow_ids)
    _require_no_live_phases(ids)
    task_ids = _task_ids_for_phases(ids)
    live_tasks = cv.live_task_ids(task_ids)
    if live_tasks:
        raise HasLiveReferencesError("Task", sorted(live_tasks), "active project tasks")

    with atomic("batch_delete_phases"):
        edges, tasks = _delete_tasks_and_edges(task_ids)
        db.session.execute(
            delete(WorkflowPhase).where(WorkflowPhase.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        compact_phase_orders(workflow_ids)

    logger.info("Phases batch-deleted count=%d tasks=%d edges=%d by=%s",
                len(ids), tasks, edges, principal.user_id)
    return {"deleted": len(ids), "ids": ids}


def reorder_phases(principal, workflow_id, phases):
    """Apply ``[{id, order}]`` to one workflow's phases.

    Proposed orders must be unique and within 1..phase count, and the
    resulting order set across every phase of the workflow must stay unique.
    """
    authorize(principal)
    iv.require_id(workflow_id, "workflow_id")
    phases = iv.require_list(phases, "phases", max_size=MAX_BATCH_SIZE)
    proposed = {}
    for raw in phases:
        raw = iv.require_object(raw, "phases")
        phase_id = iv.require_id(raw.get("id"), "id")
        if phase_id in proposed:
            raise ValidationError(f"id: duplicate id '{phase_id}'",
                                  details={"id": f"duplicate id '{phase_id}'"})
        proposed[phase_id] = iv.require_order(raw.get("order"))

    cv.workflow_mutable(workflow_id)
    cv.workflow_unreferenced(workflow_id)

    current = db.session.execute(
        select(WorkflowPhase).where(WorkflowPhase.workflow_id == workflow_id)
    ).scalars().all()
    by_id = {p.id: p for p in current}
    foreign = [pid for pid in proposed if pid not in by_id]
    if foreign:
        raise ValidationError(
            "These phases do not belong to the workflow",
            details={"phase_ids": foreign},
        )

    cv.order_within_bounds(workflow_id, list(proposed.values()), phase_count=len(current))
    final_orders = [proposed.get(p.id, p.order) for p in current]
    cv.order_within_bounds(workflow_id, final_orders, phase_count=len(current))

    with atomic("reorder_phases"):
        for phase_id, order in proposed.items():
            by_id[phase_id].order = order

    logger.info("Phases reordered workflow=%s count=%d by=%s",
                workflow_id, len(proposed), principal.user_id)
    return sorted(current, key=lambda p: p.order)


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════


def _clean_task_item(raw):
    fields = iv.task_fields(raw, partial=True)
    fields["name"] = iv.require_name(raw.get("name"))
    return fields


def _task_guards(tasks):
    wf_by_task = cv.workflow_ids_for_tasks(tasks)
    workflow_ids = sorted(set(wf_by_task.values()))
    cv.workflows_mutable(workflow_ids)
    return workflow_ids


def batch_update_tasks(principal, items):
    """Update ``{id, name, estimated_hours?, priority?, ...}`` items atomically."""
    authorize(principal)
    parsed = _parse_items(items, _clean_task_item)
    ids = [item_id for item_id, _ in parsed]

    tasks = cv.load_many(WorkflowTask, ids, "Task")
    workflow_ids = _task_guards(tasks)
    _require_live_free_workflows(workflow_ids)
    live = cv.live_task_ids(ids)
    if live:
        raise HasLiveReferencesError("Task", sorted(live), "active project tasks")
    cv.names_unique_in_batch(
        "task", [(t.id, t.phase_id, f["name"]) for t, (_, f) in zip(tasks, parsed)],
    )

    with atomic("batch_update_tasks"):
        _apply_renames([(t, f["name"]) for t, (_, f) in zip(tasks, parsed)])
        for task, (_, fields) in zip(tasks, parsed):
            _apply_fields(task, fields)

    logger.info("Tasks batch-updated count=%d by=%s", len(tasks), principal.user_id)
    return tasks


def batch_create_tasks(principal, phase_id, items):
    """Create many tasks in one phase; names checked in-batch and against siblings."""
    authorize(principal)
    items = iv.require_list(items, "items", max_size=MAX_BATCH_SIZE)
    cleaned = [iv.task_fields(raw) for raw in items]

    phase = cv.get_or_404(WorkflowPhase, phase_id, "Phase")
    cv.workflow_mutable(phase.workflow_id)
    cv.workflow_unreferenced(phase.workflow_id)
    cv.names_unique_in_batch("task", [(None, phase.id, f["name"]) for f in cleaned])

    with atomic("batch_create_tasks"):
        created = [WorkflowTask(phase_id=phase.id, **fields) for fields in cleaned]
        db.session.add_all(created)

    logger.info("Tasks batch-created phase=%s count=%d by=%s",
                phase.id, len(created), principal.user_id)
    return created


def batch_delete_tasks(principal, ids):
    """Delete tasks together with every dependency edge that references them."""
    authorize(principal)
    ids = _ids(ids)
    tasks = cv.load_many(WorkflowTask, ids, "Task")
    _require_live_free_workflows(_task_guards(tasks))
    live = cv.live_task_ids(ids)
    if live:
        raise HasLiveReferencesError("Task", sorted(live), "active project tasks")

    with atomic("batch_delete_tasks"):
        edges, deleted = _delete_tasks_and_edges(ids)

    logger.info("Tasks batch-deleted count=%d edges=%d by=%s", deleted, edges, principal.user_id)
    return {"deleted": len(ids), "ids": ids}
