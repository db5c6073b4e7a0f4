"""
Template-engine exception hierarchy.

Every service raises one of these types; the workflow blueprint registers a
single handler against ``WorkflowEngineError`` and turns ``code`` into the
HTTP status via ``wrapflow.utils.errors``.

All of them except ``TransactionFailureError`` are raised *before* any write
is issued, so a caller that sees one knows nothing was persisted.

Usage:
    from wrapflow.core.exceptions import NotFoundError, DuplicateNameError

    raise NotFoundError(resource="Workflow", resource_id=workflow_id)
    raise DuplicateNameError("workflow", "Standard Wrap")
"""

from wrapflow.utils.errors import E


class WorkflowEngineError(Exception):
    """Base class. ``details`` is a JSON-safe dict for structured responses."""

    code = E.INTERNAL

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(WorkflowEngineError):
    """No authenticated principal is attached to the call."""

    code = E.UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class InsufficientPermissionsError(WorkflowEngineError):
    """The principal's role is not one of the roles the operation requires."""

    code = E.FORBIDDEN

    def __init__(self, role: str | None, required_roles) -> None:
        self.role = role
        self.required_roles = sorted(required_roles)
        super().__init__(
            "Insufficient permissions",
            details={"role": role, "required_roles": self.required_roles},
        )


class NotFoundError(WorkflowEngineError):
    """Raised when one or more referenced entities do not exist.

    Args:
        resource: Human-readable entity name (e.g. "Workflow", "Task").
        resource_id: The id that was looked up (single-entity lookups).
        missing_ids: Ids that did not resolve (batch lookups).
    """

    code = E.NOT_FOUND

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        missing_ids: list | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.missing_ids = list(missing_ids or [])
        if self.missing_ids:
            msg = f"One or more {resource.lower()}s not found"
            details = {"missing_ids": self.missing_ids}
        else:
            msg = f"{resource} not found"
            details = {"id": resource_id} if resource_id is not None else {}
        super().__init__(msg, details=details)


class DuplicateNameError(WorkflowEngineError):
    """A sibling in the same scope already carries the candidate name."""

    code = E.CONFLICT_DUPLICATE

    def __init__(self, scope: str, names, parent_id: str | None = None) -> None:
        if isinstance(names, str):
            names = [names]
        self.scope = scope
        self.names = list(names)
        self.parent_id = parent_id
        label = {"workflow": "workflow", "phase": "phase", "task": "task"}.get(scope, scope)
        msg = f"A {label} with this name already exists: {', '.join(self.names)}"
        details = {"scope": scope, "names": self.names}
        if parent_id is not None:
            details["parent_id"] = parent_id
        super().__init__(msg, details=details)


class InactiveWorkflowError(WorkflowEngineError):
    """Structural edit (phases, tasks, dependencies) on an inactive workflow."""

    code = E.WORKFLOW_INACTIVE

    def __init__(self, workflow_ids) -> None:
        if isinstance(workflow_ids, str):
            workflow_ids = [workflow_ids]
        self.workflow_ids = list(workflow_ids)
        super().__init__(
            "Cannot modify phases or tasks of an inactive workflow",
            details={"workflow_ids": self.workflow_ids},
        )


class HasLiveReferencesError(WorkflowEngineError):
    """Modification or deletion blocked by live project linkage or edges."""

    code = E.LIVE_REFERENCES

    def __init__(self, resource: str, ids, reason: str) -> None:
        if isinstance(ids, str):
            ids = [ids]
        self.resource = resource
        self.ids = list(ids)
        self.reason = reason
        super().__init__(
            f"Cannot modify {resource.lower()}s with {reason}: {', '.join(self.ids)}",
            details={"resource": resource, "ids": self.ids, "reason": reason},
        )


class CircularDependencyError(WorkflowEngineError):
    """The graph edit would create a cycle. ``cycle`` is the offending path."""

    code = E.CIRCULAR_DEPENDENCY

    def __init__(self, cycle: list | None = None) -> None:
        self.cycle = list(cycle or [])
        super().__init__(
            "Circular dependency detected",
            details={"cycle": self.cycle} if self.cycle else None,
        )


class DuplicateEdgeError(WorkflowEngineError):
    """The exact (source, target) pair already exists."""

    code = E.DUPLICATE_EDGE

    def __init__(self, pairs) -> None:
        self.pairs = [list(p) for p in pairs]
        super().__init__(
            "Dependency already exists",
            details={"pairs": self.pairs},
        )


class OrderOutOfRangeError(WorkflowEngineError):
    """A proposed phase order is below 1 or above the workflow's phase count."""

    code = E.ORDER_OUT_OF_RANGE

    def __init__(self, orders, max_order: int) -> None:
        self.orders = sorted(orders)
        self.max_order = max_order
        super().__init__(
            "Phase order cannot exceed the total number of phases",
            details={"orders": self.orders, "max_order": max_order},
        )


class DuplicateOrderError(WorkflowEngineError):
    """Two phases would end up with the same order value."""

    code = E.DUPLICATE_ORDER

    def __init__(self, orders) -> None:
        self.orders = sorted(orders)
        super().__init__(
            "Phase orders must be unique",
            details={"orders": self.orders},
        )


class ValidationError(WorkflowEngineError):
    """Malformed input shape or out-of-range value.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    code = E.VALIDATION_INVALID


class TransactionFailureError(WorkflowEngineError):
    """The entity store failed while writing; the whole transaction was rolled back."""

    code = E.DATABASE

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__("Failed to apply changes", details={"operation": operation})
