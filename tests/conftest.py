"""
Shared pytest fixtures for the wrapflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin / manager / staff: persisted users, one per role
    - admin_p / manager_p / staff_p: matching permission-gate principals
    - auth_headers: builds Bearer headers for a user
    - make_workflow / make_phase / make_task / make_edge: direct model factories
    - make_live_project: project instance that references template entities
"""

import pytest

from wrapflow import create_app
from wrapflow.models import db as _db
from wrapflow.models.auth import User
from wrapflow.models.project import Project, ProjectPhase, ProjectTask
from wrapflow.models.workflow import TaskDependency, Workflow, WorkflowPhase, WorkflowTask
from wrapflow.services.jwt_service import generate_access_token
from wrapflow.services.permission_gate import Principal


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & principals ───────────────────────────────────────────────────


def _user(email, role, is_active=True):
    user = User(email=email, name=email.split("@")[0], role=role, is_active=is_active)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def admin():
    return _user("admin@example.com", "ADMINISTRATOR")


@pytest.fixture()
def manager():
    return _user("manager@example.com", "MANAGER")


@pytest.fixture()
def staff():
    return _user("staff@example.com", "STAFF")


@pytest.fixture()
def admin_p(admin):
    return Principal(user_id=admin.id, role=admin.role)


@pytest.fixture()
def manager_p(manager):
    return Principal(user_id=manager.id, role=manager.role)


@pytest.fixture()
def staff_p(staff):
    return Principal(user_id=staff.id, role=staff.role)


@pytest.fixture()
def auth_headers():
    """Return a callable: auth_headers(user) → Authorization headers."""
    def _headers(user, **kwargs):
        token = generate_access_token(user.id, role=user.role, **kwargs)
        return {"Authorization": f"Bearer {token}"}
    return _headers


# ── Model factories ──────────────────────────────────────────────────────


@pytest.fixture()
def make_workflow():
    def _make(name="Standard Wrap", **kwargs):
        kwargs.setdefault("description", "")
        kwargs.setdefault("version", "1.0")
        kwargs.setdefault("is_active", True)
        wf = Workflow(name=name, **kwargs)
        _db.session.add(wf)
        _db.session.commit()
        return wf
    return _make


@pytest.fixture()
def make_phase():
    def _make(workflow, name, order, **kwargs):
        phase = WorkflowPhase(workflow_id=workflow.id, name=name, order=order, **kwargs)
        _db.session.add(phase)
        _db.session.commit()
        return phase
    return _make


@pytest.fixture()
def make_task():
    def _make(phase, name, **kwargs):
        kwargs.setdefault("estimated_hours", 1)
        task = WorkflowTask(phase_id=phase.id, name=name, **kwargs)
        _db.session.add(task)
        _db.session.commit()
        return task
    return _make


@pytest.fixture()
def make_edge():
    def _make(source, target, dependency_type="FINISH_TO_START"):
        edge = TaskDependency(
            source_task_id=source.id,
            target_task_id=target.id,
            dependency_type=dependency_type,
        )
        _db.session.add(edge)
        _db.session.commit()
        return edge
    return _make


@pytest.fixture()
def make_live_project():
    """Instantiate ``workflow`` as a project, mirroring the given phases/tasks."""
    def _make(workflow, status="ACTIVE", phases=(), tasks=()):
        project = Project(name=f"{workflow.name} project", status=status, workflow_id=workflow.id)
        _db.session.add(project)
        _db.session.flush()
        project_phases = {}
        for phase in phases:
            pp = ProjectPhase(project_id=project.id, workflow_phase_id=phase.id, name=phase.name)
            _db.session.add(pp)
            project_phases[phase.id] = pp
        _db.session.flush()
        for task in tasks:
            pp = project_phases.get(task.phase_id)
            if pp is None:
                pp = ProjectPhase(project_id=project.id, workflow_phase_id=None, name="unlinked")
                _db.session.add(pp)
                _db.session.flush()
                project_phases[task.phase_id] = pp
            _db.session.add(ProjectTask(
                project_phase_id=pp.id, workflow_task_id=task.id, name=task.name,
            ))
        _db.session.commit()
        return project
    return _make


@pytest.fixture()
def wrap_template(make_workflow, make_phase, make_task):
    """'Standard Wrap' with three ordered phases and two tasks in each."""
    wf = make_workflow("Standard Wrap", description="Vehicle wrap template")
    phases = [
        make_phase(wf, "Marketing", 1, estimated_duration=5),
        make_phase(wf, "Design", 2, estimated_duration=10),
        make_phase(wf, "Installation", 3, estimated_duration=5),
    ]
    tasks = {}
    for phase in phases:
        for suffix in ("Kickoff", "Sign Off"):
            tasks[f"{phase.name} {suffix}"] = make_task(phase, f"{phase.name} {suffix}")
    return {"workflow": wf, "phases": phases, "tasks": tasks}
