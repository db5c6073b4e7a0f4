"""
Duplication Engine: deep copy of a workflow template.

Two passes inside a single transaction:
    1. workflow, then phases (in order), then tasks; records old → new id maps
    2. dependency edges translated through the completed task map

New ids are assigned at construction so both maps are complete before
anything is flushed, and the copy is structurally isomorphic to the source.
"""

import copy
import logging
import uuid

from wrapflow.models import db
from wrapflow.models.workflow import TaskDependency, Workflow, WorkflowPhase, WorkflowTask
from wrapflow.services import constraint_validator as cv
from wrapflow.services import input_validation as iv
from wrapflow.services.helpers.transaction import atomic
from wrapflow.services.permission_gate import authorize

logger = logging.getLogger(__name__)

_PHASE_COPY_FIELDS = ("name", "description", "order", "estimated_duration")

_TASK_COPY_FIELDS = ("name", "description", "estimated_hours", "priority")


def _new_id():
    return str(uuid.uuid4())


def _clone_phase(source, workflow_id):
    fields = {f: getattr(source, f) for f in _PHASE_COPY_FIELDS}
    return WorkflowPhase(id=_new_id(), workflow_id=workflow_id, **fields)


def _clone_task(source, phase_id):
    fields = {f: getattr(source, f) for f in _TASK_COPY_FIELDS}
    fields["required_skills"] = list(source.required_skills or [])
    fields["form_template"] = copy.deepcopy(source.form_template)
    return WorkflowTask(id=_new_id(), phase_id=phase_id, **fields)


def duplicate_workflow(
    principal,
    source_workflow_id,
    name,
    *,
    description=None,
    version=None,
    is_active=None,
    include_dependencies=True,
):
    """Copy ``source_workflow_id`` and its whole subtree under a new name.

    Caller-supplied description / version / is_active override the copied
    values. Returns the new Workflow.

    Raises:
        UnauthorizedError / InsufficientPermissionsError
        ValidationError: bad name, description, version or is_active
        NotFoundError: source workflow missing
        DuplicateNameError: ``name`` already used by another workflow
        TransactionFailureError: store failure; nothing is persisted
    """
    authorize(principal)
    name = iv.require_name(name)
    if description is not None:
        description = iv.optional_description(description)
    if version is not None:
        version = iv.require_version(version)
    if is_active is not None:
        is_active = iv.require_bool(is_active, "is_active")

    source = cv.get_or_404(Workflow, source_workflow_id, "Workflow")
    cv.name_unique("workflow", name)

    source_phases = list(source.phases)
    tasks_by_phase = {p.id: list(p.tasks) for p in source_phases}
    source_edges = source.dependency_edges() if include_dependencies else []

    phase_map = {}
    task_map = {}

    with atomic("duplicate_workflow"):
        new_wf = Workflow(
            id=_new_id(),
            name=name,
            description=source.description if description is None else description,
            version=source.version if version is None else version,
            is_active=source.is_active if is_active is None else is_active,
            created_by_id=principal.user_id,
        )
        db.session.add(new_wf)

        # Pass 1: structure
        for phase in source_phases:
            new_phase = _clone_phase(phase, new_wf.id)
            phase_map[phase.id] = new_phase.id
            db.session.add(new_phase)
            for task in tasks_by_phase[phase.id]:
                new_task = _clone_task(task, new_phase.id)
                task_map[task.id] = new_task.id
                db.session.add(new_task)

        # Pass 2: edges through the completed task map
        edge_count = 0
        for edge in source_edges:
            src = task_map.get(edge.source_task_id)
            dst = task_map.get(edge.target_task_id)
            if src is None or dst is None:
                continue
            db.session.add(TaskDependency(
                id=_new_id(),
                source_task_id=src,
                target_task_id=dst,
                dependency_type=edge.dependency_type,
            ))
            edge_count += 1

    logger.info(
        "Workflow duplicated source=%s new=%s phases=%d tasks=%d edges=%d by=%s",
        source.id, new_wf.id, len(phase_map), len(task_map), edge_count, principal.user_id,
    )
    return new_wf
