#!/usr/bin/env python3
"""
wrapflow: Demo Seed.

Creates the default administrator and the "Standard Vehicle Wrap Process"
template (4 phases, 19 tasks) through the regular service layer, so every
record passes the same validation as an API request.

Usage:
    python scripts/seed_demo_workflow.py                 # reset DB + seed
    python scripts/seed_demo_workflow.py --no-reset      # keep existing data
    python scripts/seed_demo_workflow.py --chain         # also add FINISH_TO_START chains
"""

import argparse
import logging
import sys

sys.path.insert(0, ".")

from wrapflow import create_app
from wrapflow.models import db
from wrapflow.models.auth import User
from wrapflow.models.workflow import Workflow
from wrapflow.services import dependency_graph, workflow_service
from wrapflow.services.permission_gate import Principal

logger = logging.getLogger("seed_demo_workflow")

ADMIN_EMAIL = "admin@example.com"

WORKFLOW = {
    "name": "Standard Vehicle Wrap Process",
    "description": "Standard workflow for vehicle wrap projects",
    "version": "1.0",
    "is_active": True,
}

# (name, description, estimated_duration, [(task, description, hours)])
PHASES = [
    ("Marketing", "Initial client contact and project setup", 5, [
        ("Creative Concept Meeting", "Initial client meeting", 2),
        ("Follow up Email", "Send follow-up documentation", 1),
        ("Rough Mock up", "Create initial design concept", 4),
        ("Photos & Sizing", "Vehicle documentation", 2),
        ("Physical Inspection", "Vehicle inspection", 2),
        ("Confirm and Update Invoice", "Financial documentation", 1),
    ]),
    ("Design", "Design and approval process", 10, [
        ("Pre-Design Layout Meeting", "Team planning meeting", 2),
        ("Create and verify Template", "Technical setup", 4),
        ("Start High Res Design", "Main design work", 8),
        ("Art Direction Sign Off", "Internal approval", 1),
        ("Customer Sign Off", "Client approval", 2),
    ]),
    ("Production", "Material production and preparation", 8, [
        ("Order Raw Materials", "Material procurement", 2),
        ("Print Ready Files", "File preparation", 4),
        ("Printing", "Material printing", 6),
        ("Quality Control", "Production QC", 2),
    ]),
    ("Installation", "Final installation and delivery", 5, [
        ("Pre-Installation Prep", "Surface preparation", 4),
        ("Installation", "Main installation work", 8),
        ("Quality Control", "Final inspection", 2),
        ("Client Handoff", "Project completion", 1),
    ]),
]


def seed_admin():
    admin = User.query.filter_by(email=ADMIN_EMAIL).first()
    if admin is None:
        admin = User(email=ADMIN_EMAIL, name="Admin", role="ADMINISTRATOR", is_active=True)
        db.session.add(admin)
        db.session.commit()
        logger.info("Created admin user id=%s", admin.id)
    return Principal(user_id=admin.id, role=admin.role)


def seed_workflow(principal, chain=False):
    if Workflow.query.filter_by(name=WORKFLOW["name"]).first():
        logger.info("Workflow %r already present, skipping", WORKFLOW["name"])
        return None

    wf = workflow_service.create_workflow(principal, WORKFLOW)
    task_ids = []
    for order, (name, description, duration, tasks) in enumerate(PHASES, start=1):
        phase = workflow_service.create_phase(principal, wf.id, {
            "name": name,
            "description": description,
            "order": order,
            "estimated_duration": duration,
        })
        for task_name, task_description, hours in tasks:
            task = workflow_service.create_task(principal, phase.id, {
                "name": task_name,
                "description": task_description,
                "estimated_hours": hours,
            })
            task_ids.append(task.id)

    if chain and len(task_ids) > 1:
        edges = [
            {"source_task_id": a, "target_task_id": b, "dependency_type": "FINISH_TO_START"}
            for a, b in zip(task_ids, task_ids[1:])
        ]
        dependency_graph.replace_edges(principal, wf.id, edges)

    logger.info("Seeded workflow id=%s phases=%d tasks=%d", wf.id, len(PHASES), len(task_ids))
    return wf


def main():
    parser = argparse.ArgumentParser(description="Seed the demo workflow template")
    parser.add_argument("--no-reset", action="store_true",
                        help="Don't clear existing data")
    parser.add_argument("--chain", action="store_true",
                        help="Link every task to the next with FINISH_TO_START")
    args = parser.parse_args()

    app = create_app()
    logger.info("DB: %s", app.config["SQLALCHEMY_DATABASE_URI"])

    with app.app_context():
        if not args.no_reset:
            db.drop_all()
            db.create_all()
            logger.info("Database reset complete")

        principal = seed_admin()
        seed_workflow(principal, chain=args.chain)


if __name__ == "__main__":
    main()
