"""
Dependency Graph Engine: cycle-safe edits of the task dependency graph.

Edges point from predecessor (source) to dependent (target): "A depends on
B" is stored as B → A. The graph over all edges of a workflow must stay
acyclic after every single or bulk edit.

Pure graph helpers:
    build_adjacency(edges)            → {source: {targets}}
    find_cycle(adjacency, start)      → cycle path or None
    detect_cycle(edges, start)        → bool
    assert_acyclic(edges, starts)     → raises CircularDependencyError

Service operations (principal first, one transaction each):
    add_edge, add_edges, replace_edges, remove_edge, list_task_dependencies

Validation always completes before the first write, so a rejected edit
leaves the stored edge set untouched.
"""

import logging
from collections import Counter, defaultdict

from sqlalchemy import delete, or_, select

from wrapflow.core.exceptions import (
    CircularDependencyError,
    DuplicateEdgeError,
    HasLiveReferencesError,
    NotFoundError,
    ValidationError,
)
from wrapflow.models import db
from wrapflow.models.workflow import TaskDependency, Workflow, WorkflowPhase, WorkflowTask
from wrapflow.services import constraint_validator as cv
from wrapflow.services import input_validation as iv
from wrapflow.services.helpers.transaction import atomic
from wrapflow.services.permission_gate import READ_ROLES, authorize

logger = logging.getLogger(__name__)

MAX_EDGES_PER_REQUEST = 50


# ═════════════════════════════════════════════════════════════════════════════
# Pure graph helpers
# ═════════════════════════════════════════════════════════════════════════════


def build_adjacency(edges):
    """Adjacency map from any iterable whose items start with (source, target)."""
    adjacency = defaultdict(set)
    for edge in edges:
        adjacency[edge[0]].add(edge[1])
    return adjacency


def find_cycle(adjacency, start_node):
    """
    Iterative DFS from ``start_node``.

    Keeps the current path on an explicit stack; reaching a node that is
    already on the path closes a cycle, returned as ``[n0, ..., nk, n0]``.
    Nodes whose subtree has been fully explored are not entered again.
    Returns None when no cycle is reachable from ``start_node``.
    """
    path = [start_node]
    on_path = {start_node}
    finished = set()
    stack = [iter(sorted(adjacency.get(start_node, ())))]

    while stack:
        nxt = next(stack[-1], None)
        if nxt is None:
            stack.pop()
            node = path.pop()
            on_path.discard(node)
            finished.add(node)
            continue
        if nxt in on_path:
            return path[path.index(nxt):] + [nxt]
        if nxt in finished:
            continue
        path.append(nxt)
        on_path.add(nxt)
        stack.append(iter(sorted(adjacency.get(nxt, ()))))

    return None


def detect_cycle(edges, start_node) -> bool:
    return find_cycle(build_adjacency(edges), start_node) is not None


def assert_acyclic(edges, start_nodes):
    """Raise CircularDependencyError if a cycle is reachable from any start node."""
    adjacency = build_adjacency(edges)
    for node in sorted(set(start_nodes)):
        cycle = find_cycle(adjacency, node)
        if cycle:
            raise CircularDependencyError(cycle)


# ═════════════════════════════════════════════════════════════════════════════
# Internal loaders / guards
# ═════════════════════════════════════════════════════════════════════════════


def _workflow_edge_pairs(workflow_id):
    """(source, target, type, id) for every edge whose source task is in the workflow."""
    rows = db.session.execute(
        select(
            TaskDependency.source_task_id,
            TaskDependency.target_task_id,
            TaskDependency.dependency_type,
            TaskDependency.id,
        )
        .join(WorkflowTask, TaskDependency.source_task_id == WorkflowTask.id)
        .join(WorkflowPhase, WorkflowTask.phase_id == WorkflowPhase.id)
        .where(WorkflowPhase.workflow_id == workflow_id)
    ).all()
    return [tuple(r) for r in rows]


def _workflow_task_ids(workflow_id):
    return set(db.session.execute(
        select(WorkflowTask.id)
        .join(WorkflowPhase, WorkflowTask.phase_id == WorkflowPhase.id)
        .where(WorkflowPhase.workflow_id == workflow_id)
    ).scalars())


def _guard_workflow(workflow_id, task_ids):
    """Workflow active, not used by live projects, tasks not linked to live project tasks."""
    cv.workflow_mutable(workflow_id)
    cv.workflow_unreferenced(workflow_id)
    live = cv.live_task_ids(task_ids)
    if live:
        raise HasLiveReferencesError("Task", sorted(live), "active project tasks")


def _single_workflow(tasks):
    """All tasks must share one workflow; return its id."""
    wf_by_task = cv.workflow_ids_for_tasks(tasks)
    workflow_ids = set(wf_by_task.values())
    if len(workflow_ids) != 1:
        raise ValidationError(
            "Dependent tasks must belong to the same workflow",
            details={"workflow_ids": sorted(workflow_ids)},
        )
    return workflow_ids.pop()


def _parse_edges(raw_edges, field="dependencies"):
    raw_edges = iv.require_list(raw_edges, field, max_size=MAX_EDGES_PER_REQUEST) if raw_edges else []
    edges = [iv.dependency_tuple(e) for e in raw_edges]
    dupes = [pair for pair, n in Counter((s, t) for s, t, _ in edges).items() if n > 1]
    if dupes:
        raise DuplicateEdgeError(dupes)
    return edges


# ═════════════════════════════════════════════════════════════════════════════
# Operations
# ═════════════════════════════════════════════════════════════════════════════


def add_edge(principal, source_task_id, target_task_id, dependency_type=None):
    """Insert one source → target edge after endpoint, cycle and duplicate checks."""
    authorize(principal)
    dependency_type = iv.require_dependency_type(dependency_type)
    iv.require_id(source_task_id, "source_task_id")
    iv.require_id(target_task_id, "target_task_id")

    source = cv.get_or_404(WorkflowTask, source_task_id, "Task")
    target = cv.get_or_404(WorkflowTask, target_task_id, "Task")
    workflow_id = _single_workflow([source, target])
    _guard_workflow(workflow_id, [source.id, target.id])

    if source.id == target.id:
        raise CircularDependencyError([source.id, source.id])

    existing = _workflow_edge_pairs(workflow_id)
    candidate = existing + [(source.id, target.id, dependency_type, None)]
    assert_acyclic(candidate, [source.id])

    if any(s == source.id and t == target.id for s, t, _, _ in existing):
        raise DuplicateEdgeError([(source.id, target.id)])

    with atomic("add_edge"):
        dep = TaskDependency(
            source_task_id=source.id,
            target_task_id=target.id,
            dependency_type=dependency_type,
        )
        db.session.add(dep)

    logger.info("Dependency added source=%s target=%s type=%s workflow=%s",
                source.id, target.id, dependency_type, workflow_id)
    return dep


def add_edges(principal, raw_edges):
    """Insert many new edges atomically; the existing edge set is kept."""
    authorize(principal)
    edges = _parse_edges(raw_edges)
    if not edges:
        raise ValidationError("dependencies: must be a non-empty list",
                              details={"dependencies": "must be a non-empty list"})

    task_ids = list(dict.fromkeys([s for s, _, _ in edges] + [t for _, t, _ in edges]))
    tasks = cv.load_many(WorkflowTask, task_ids, "Task")
    workflow_id = _single_workflow(tasks)
    _guard_workflow(workflow_id, task_ids)

    self_loops = [s for s, t, _ in edges if s == t]
    if self_loops:
        raise CircularDependencyError([self_loops[0], self_loops[0]])

    existing = _workflow_edge_pairs(workflow_id)
    assert_acyclic(existing + edges, [s for s, _, _ in edges])

    existing_pairs = {(s, t) for s, t, _, _ in existing}
    duplicates = [(s, t) for s, t, _ in edges if (s, t) in existing_pairs]
    if duplicates:
        raise DuplicateEdgeError(duplicates)

    with atomic("add_edges"):
        created = [
            TaskDependency(source_task_id=s, target_task_id=t, dependency_type=dep_type)
            for s, t, dep_type in edges
        ]
        db.session.add_all(created)

    logger.info("Dependencies added count=%d workflow=%s", len(created), workflow_id)
    return created


def replace_edges(principal, workflow_id, raw_edges, task_scope=None):
    """
    Replace every edge touching ``task_scope`` with ``raw_edges``.

    ``task_scope`` defaults to every task of the workflow. Edges that do not
    touch the scope are kept, and the acyclicity check runs over those kept
    edges together with the new set, from every node involved.
    """
    authorize(principal)
    iv.require_id(workflow_id, "workflow_id")
    if not isinstance(raw_edges, list):
        raise ValidationError("dependencies: must be a list (use [] to clear)",
                              details={"dependencies": "must be a list"})
    edges = _parse_edges(raw_edges)

    cv.get_or_404(Workflow, workflow_id, "Workflow")
    workflow_tasks = _workflow_task_ids(workflow_id)

    if task_scope is None:
        scope = set(workflow_tasks)
    else:
        scope = set(iv.require_id_list(task_scope, "task_ids"))
        foreign = sorted(scope - workflow_tasks)
        if foreign:
            raise ValidationError(
                "Tasks do not belong to the workflow",
                details={"task_ids": foreign},
            )

    endpoints = {s for s, _, _ in edges} | {t for _, t, _ in edges}
    missing = sorted(endpoints - workflow_tasks)
    if missing:
        known = set(db.session.execute(
            select(WorkflowTask.id).where(WorkflowTask.id.in_(missing))
        ).scalars())
        unknown = [m for m in missing if m not in known]
        if unknown:
            raise NotFoundError(resource="Task", missing_ids=unknown)
        raise ValidationError(
            "Dependent tasks must belong to the same workflow",
            details={"task_ids": missing},
        )

    outside = sorted({s for s, t, _ in edges if s not in scope and t not in scope})
    if outside:
        raise ValidationError(
            "Every new dependency must touch a task in scope",
            details={"source_task_ids": outside},
        )

    _guard_workflow(workflow_id, sorted(scope | endpoints))

    self_loops = [s for s, t, _ in edges if s == t]
    if self_loops:
        raise CircularDependencyError([self_loops[0], self_loops[0]])

    existing = _workflow_edge_pairs(workflow_id)
    kept = [(s, t, dep_type) for s, t, dep_type, _ in existing if s not in scope and t not in scope]
    candidate = kept + edges
    assert_acyclic(candidate, {s for s, _, _ in candidate})

    with atomic("replace_edges"):
        removed = 0
        if scope:
            removed = db.session.execute(
                delete(TaskDependency).where(
                    or_(
                        TaskDependency.source_task_id.in_(scope),
                        TaskDependency.target_task_id.in_(scope),
                    )
                ).execution_options(synchronize_session=False)
            ).rowcount
        created = [
            TaskDependency(source_task_id=s, target_task_id=t, dependency_type=dep_type)
            for s, t, dep_type in edges
        ]
        db.session.add_all(created)

    logger.info("Dependencies replaced workflow=%s scope=%d removed=%d added=%d",
                workflow_id, len(scope), removed, len(created))
    return created


def remove_edge(principal, dependency_id):
    authorize(principal)
    dep = cv.get_or_404(TaskDependency, dependency_id, "Dependency")
    source = db.session.get(WorkflowTask, dep.source_task_id)
    workflow_id = source.phase.workflow_id
    _guard_workflow(workflow_id, [dep.source_task_id, dep.target_task_id])

    with atomic("remove_edge"):
        db.session.delete(dep)

    logger.info("Dependency removed id=%s workflow=%s", dependency_id, workflow_id)
    return None


def list_task_dependencies(principal, task_id):
    """Predecessor and successor edges of one task."""
    authorize(principal, READ_ROLES)
    task = cv.get_or_404(WorkflowTask, task_id, "Task")
    return {
        "task_id": task.id,
        "depends_on": [d.to_dict() for d in task.incoming_dependencies],
        "depended_on_by": [d.to_dict() for d in task.outgoing_dependencies],
    }
