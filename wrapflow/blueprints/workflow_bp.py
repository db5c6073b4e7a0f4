"""
Workflow Template Blueprint: template CRUD, duplication, batch edits and
dependency graph routes.

Endpoints:
  Workflow:     GET/POST /workflows, GET/PUT/DELETE /workflows/<id>
                POST /workflows/<id>/duplicate
                PUT/PATCH/DELETE /workflows/batch
  Phase:        GET/POST /workflows/<id>/phases, GET/PUT/DELETE /phases/<id>
                PUT/DELETE /phases/batch, PATCH /phases/batch (reorder)
  Task:         GET/POST /phases/<id>/tasks, POST /phases/<id>/tasks/batch
                GET/PUT/DELETE /tasks/<id>, PUT/DELETE /tasks/batch
  Dependency:   GET/POST /tasks/<id>/dependencies, POST /dependencies/batch
                PUT /workflows/<id>/dependencies, DELETE /dependencies/<id>

The acting principal is resolved from ``g.jwt_user_id``; every service call
receives it explicitly and runs the permission gate itself.
"""

import logging

from flask import Blueprint, g, jsonify, request
from werkzeug.exceptions import HTTPException

from wrapflow.blueprints import pagination_args
from wrapflow.core.exceptions import TransactionFailureError, ValidationError, WorkflowEngineError
from wrapflow.services import batch_service, dependency_graph, workflow_service
from wrapflow.services.duplication_service import duplicate_workflow
from wrapflow.services.permission_gate import load_principal
from wrapflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")


def _principal():
    return load_principal(getattr(g, "jwt_user_id", None))


def _body():
    """The JSON request body as a dict; an empty or unparseable body is ``{}``."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("body: must be a JSON object", details={"body": "must be a JSON object"})
    return data


def _bool_arg(name):
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.lower() in ("1", "true", "yes")


# ── Error handlers ───────────────────────────────────────────────────────


@workflow_bp.errorhandler(TransactionFailureError)
def _handle_transaction_failure(error: TransactionFailureError):
    return api_error(E.DATABASE, "Failed to apply changes")


@workflow_bp.errorhandler(WorkflowEngineError)
def _handle_engine_error(error: WorkflowEngineError):
    return api_error(error.code, str(error), details=error.details or None)


@workflow_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in workflow_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ═════════════════════════════════════════════════════════════════════════════
# Workflows
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflows", methods=["GET"])
def list_workflows():
    """List workflows, optionally filtered by ?search= and ?is_active=."""
    limit, offset = pagination_args()
    items, total = workflow_service.list_workflows(
        _principal(),
        search=request.args.get("search"),
        is_active=_bool_arg("is_active"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": [w.to_dict() for w in items], "total": total})


@workflow_bp.route("/workflows", methods=["POST"])
def create_workflow():
    wf = workflow_service.create_workflow(_principal(), _body())
    return jsonify(wf.to_dict()), 201


@workflow_bp.route("/workflows/<workflow_id>", methods=["GET"])
def get_workflow(workflow_id):
    wf = workflow_service.get_workflow(_principal(), workflow_id)
    return jsonify(wf.to_dict(include_children=True))


@workflow_bp.route("/workflows/<workflow_id>", methods=["PUT"])
def update_workflow(workflow_id):
    wf = workflow_service.update_workflow(_principal(), workflow_id, _body())
    return jsonify(wf.to_dict())


@workflow_bp.route("/workflows/<workflow_id>", methods=["DELETE"])
def delete_workflow(workflow_id):
    workflow_service.delete_workflow(_principal(), workflow_id)
    return "", 204


@workflow_bp.route("/workflows/<workflow_id>/duplicate", methods=["POST"])
def duplicate(workflow_id):
    """Deep-copy a workflow with its phases, tasks and dependencies."""
    data = _body()
    wf = duplicate_workflow(
        _principal(),
        workflow_id,
        data.get("name"),
        description=data.get("description"),
        version=data.get("version"),
        is_active=data.get("is_active"),
        include_dependencies=data.get("include_dependencies", True) is not False,
    )
    return jsonify(wf.to_dict(include_children=True)), 201


@workflow_bp.route("/workflows/batch", methods=["PUT"])
def batch_update_workflows():
    workflows = batch_service.batch_update_workflows(_principal(), _body().get("items"))
    return jsonify({"items": [w.to_dict() for w in workflows], "total": len(workflows)})


@workflow_bp.route("/workflows/batch", methods=["PATCH"])
def batch_patch_workflows():
    data = _body()
    workflows = batch_service.batch_patch_workflows(_principal(), data.get("ids"), data.get("data"))
    return jsonify({"items": [w.to_dict() for w in workflows], "total": len(workflows)})


@workflow_bp.route("/workflows/batch", methods=["DELETE"])
def batch_delete_workflows():
    result = batch_service.batch_delete_workflows(_principal(), _body().get("ids"))
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════════
# Phases
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflows/<workflow_id>/phases", methods=["GET"])
def list_phases(workflow_id):
    phases = workflow_service.list_phases(_principal(), workflow_id)
    return jsonify({"items": [p.to_dict() for p in phases], "total": len(phases)})


@workflow_bp.route("/workflows/<workflow_id>/phases", methods=["POST"])
def create_phase(workflow_id):
    phase = workflow_service.create_phase(_principal(), workflow_id, _body())
    return jsonify(phase.to_dict()), 201


@workflow_bp.route("/phases/batch", methods=["PUT"])
def batch_update_phases():
    phases = batch_service.batch_update_phases(_principal(), _body().get("items"))
    return jsonify({"items": [p.to_dict() for p in phases], "total": len(phases)})


@workflow_bp.route("/phases/batch", methods=["PATCH"])
def reorder_phases():
    """Reorder: {workflow_id, phases: [{id, order}]}."""
    data = _body()
    phases = batch_service.reorder_phases(_principal(), data.get("workflow_id"), data.get("phases"))
    return jsonify({"items": [p.to_dict() for p in phases], "total": len(phases)})


@workflow_bp.route("/phases/batch", methods=["DELETE"])
def batch_delete_phases():
    result = batch_service.batch_delete_phases(_principal(), _body().get("ids"))
    return jsonify(result)


@workflow_bp.route("/phases/<phase_id>", methods=["GET"])
def get_phase(phase_id):
    phase = workflow_service.get_phase(_principal(), phase_id)
    return jsonify(phase.to_dict(include_children=True))


@workflow_bp.route("/phases/<phase_id>", methods=["PUT"])
def update_phase(phase_id):
    phase = workflow_service.update_phase(_principal(), phase_id, _body())
    return jsonify(phase.to_dict())


@workflow_bp.route("/phases/<phase_id>", methods=["DELETE"])
def delete_phase(phase_id):
    workflow_service.delete_phase(_principal(), phase_id)
    return "", 204


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/phases/<phase_id>/tasks", methods=["GET"])
def list_tasks(phase_id):
    tasks = workflow_service.list_tasks(_principal(), phase_id)
    return jsonify({"items": [t.to_dict() for t in tasks], "total": len(tasks)})


@workflow_bp.route("/phases/<phase_id>/tasks", methods=["POST"])
def create_task(phase_id):
    task = workflow_service.create_task(_principal(), phase_id, _body())
    return jsonify(task.to_dict()), 201


@workflow_bp.route("/phases/<phase_id>/tasks/batch", methods=["POST"])
def batch_create_tasks(phase_id):
    tasks = batch_service.batch_create_tasks(_principal(), phase_id, _body().get("items"))
    return jsonify({"items": [t.to_dict() for t in tasks], "total": len(tasks)}), 201


@workflow_bp.route("/tasks/batch", methods=["PUT"])
def batch_update_tasks():
    tasks = batch_service.batch_update_tasks(_principal(), _body().get("items"))
    return jsonify({"items": [t.to_dict() for t in tasks], "total": len(tasks)})


@workflow_bp.route("/tasks/batch", methods=["DELETE"])
def batch_delete_tasks():
    result = batch_service.batch_delete_tasks(_principal(), _body().get("ids"))
    return jsonify(result)


@workflow_bp.route("/tasks/<task_id>", methods=["GET"])
def get_task(task_id):
    task = workflow_service.get_task(_principal(), task_id)
    return jsonify(task.to_dict(include_dependencies=True))


@workflow_bp.route("/tasks/<task_id>", methods=["PUT"])
def update_task(task_id):
    task = workflow_service.update_task(_principal(), task_id, _body())
    return jsonify(task.to_dict())


@workflow_bp.route("/tasks/<task_id>", methods=["DELETE"])
def delete_task(task_id):
    workflow_service.delete_task(_principal(), task_id)
    return "", 204


# ═════════════════════════════════════════════════════════════════════════════
# Dependencies
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/tasks/<task_id>/dependencies", methods=["GET"])
def list_dependencies(task_id):
    return jsonify(dependency_graph.list_task_dependencies(_principal(), task_id))


@workflow_bp.route("/tasks/<task_id>/dependencies", methods=["POST"])
def add_dependency(task_id):
    """Add task_id → target_task_id (the target depends on this task)."""
    data = _body()
    dep = dependency_graph.add_edge(
        _principal(), task_id, data.get("target_task_id"), data.get("dependency_type"),
    )
    return jsonify(dep.to_dict()), 201


@workflow_bp.route("/dependencies/batch", methods=["POST"])
def add_dependencies():
    created = dependency_graph.add_edges(_principal(), _body().get("dependencies"))
    return jsonify({"items": [d.to_dict() for d in created], "total": len(created)}), 201


@workflow_bp.route("/workflows/<workflow_id>/dependencies", methods=["PUT"])
def replace_dependencies(workflow_id):
    """Replace every edge touching ``task_ids`` (default: the whole workflow)."""
    data = _body()
    created = dependency_graph.replace_edges(
        _principal(), workflow_id, data.get("dependencies"), task_scope=data.get("task_ids"),
    )
    return jsonify({"items": [d.to_dict() for d in created], "total": len(created)})


@workflow_bp.route("/dependencies/<dependency_id>", methods=["DELETE"])
def remove_dependency(dependency_id):
    dependency_graph.remove_edge(_principal(), dependency_id)
    return "", 204
