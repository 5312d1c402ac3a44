"""Demo data for a fresh database (``flask seed``).

Wipes the planning tables and loads one admin user, the sample team, four
Q1 2025 goals with assignees, tasks and date-range allocations. Time off is
left empty; it arrives through calendar sync or Personio import.

Transaction policy: seed() commits once at the end.
"""
import logging
from datetime import date

from app.models import db
from app.models.auth import User
from app.models.capacity import Allocation, WeeklyAllocation
from app.models.checkin import WeeklyCheckin, WeeklyCheckinItem
from app.models.imports import DuplicateMatch
from app.models.okr import (
    Goal, GoalAssignee, Initiative, InitiativeAssignment, InitiativeTimeEntry, InitiativeUpdate,
    KeyResult, KeyResultAssignee, KeyResultUpdate,
)
from app.models.task import ResolvedAssignee, Task, TaskAssignee, TaskTimeEntry
from app.models.team import TeamMember, TimeOff
from app.utils.crypto import hash_password

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin"
SEED_TEAM = "Ecosystem Engineering"

MEMBERS = [
    ("Darlisa Giusti Consoni", "darlisa.consoni", "Product Owner", 40),
    ("Fabian Bormann", "fabian.bormann", "Team Lead Ecosystem Engineering", 40),
    ("Florian Schumann", "florian.schumann", "DevOps Engineer", 40),
    ("Giovanni Gargiulo", "giovanni.gargiulo", "Senior Enterprise Architect", 40),
    ("Luis Zarate", "luis.zarate", "QA Engineer", 40),
    ("Manvir Schneider", "manvir.schneider", "Senior Research Scientist", 40),
    ("Marco Russo", "marco.russo", "Backend Development Lead", 40),
    ("Mateusz Czeladka", "mateusz.czeladka", "Senior Software Architect", 32),
    ("Max Grützmacher", "max.gruetzmacher", "Intern", 20),
    ("Satya Ranjan", "satya.ranjan", "Lead Blockchain Architect", 40),
    ("Thomas Kammerlocher", "thomas.kammerlocher", "Senior Full Stack Developer", 40),
]
EMAIL_DOMAIN = "cardanofoundation.org"

# (external_id, title, description, progress, owner index)
GOALS = [
    ("G-001", "Platform Infrastructure Modernization",
     "Upgrade core infrastructure and improve reliability", 35, 0),
    ("G-002", "API Development & Integration", "Build and integrate new API endpoints", 50, 1),
    ("G-003", "Testing & Quality Assurance", "Implement comprehensive testing framework", 25, 2),
    ("G-004", "Documentation & Knowledge Base", "Create and maintain technical documentation", 40, 3),
]
SEED_QUARTER = "Q1 2025"

# goal index -> member indexes
GOAL_ASSIGNEES = {0: [0, 1, 7], 1: [1, 3, 4], 2: [7, 8, 9], 3: [2, 5, 6]}

# (external_id, title, status, effort, goal index, priority, assignee index)
TASKS = [
    ("T-001", "Set up monitoring infrastructure", "done", 40, 0, "high", 0),
    ("T-002", "Deploy staging environment", "in-progress", 32, 0, "high", 1),
    ("T-003", "Configure CI/CD pipelines", "todo", 24, 0, "medium", 7),
    ("T-004", "Design API endpoints", "done", 16, 1, "high", 3),
    ("T-005", "Implement authentication", "in-progress", 40, 1, "critical", 4),
    ("T-006", "Add rate limiting", "todo", 16, 1, "medium", 1),
    ("T-007", "Write unit tests", "in-progress", 32, 2, "high", 7),
    ("T-008", "Set up integration tests", "todo", 24, 2, "medium", 8),
    ("T-009", "Write API documentation", "in-progress", 20, 3, "medium", 2),
    ("T-010", "Create developer guides", "todo", 16, 3, "low", 5),
]

# (member index, goal index, percentage)
ALLOCATIONS = [
    (0, 0, 50), (0, 1, 30), (1, 0, 40), (1, 1, 40), (2, 3, 60), (3, 1, 70), (4, 1, 60),
    (5, 3, 50), (6, 3, 40), (7, 0, 30), (7, 2, 50), (8, 2, 60), (9, 2, 50), (10, 0, 40),
]
ALLOCATION_START = date(2025, 1, 1)
ALLOCATION_END = date(2025, 3, 31)


def _clear() -> None:
    # children first; SQLite enforces foreign keys
    for model in (
        WeeklyCheckinItem, WeeklyCheckin, WeeklyAllocation, DuplicateMatch,
        InitiativeTimeEntry, InitiativeUpdate, InitiativeAssignment, Initiative,
        KeyResultUpdate, KeyResultAssignee, KeyResult,
        TaskTimeEntry, ResolvedAssignee, Allocation, TaskAssignee, GoalAssignee, Task, Goal,
        TimeOff, TeamMember, User,
    ):
        model.query.delete()


def seed() -> dict:
    """Replace the sample tables with demo data; returns row counts."""
    logger.info("Starting database seed")
    _clear()

    # the demo admin keeps its password
    db.session.add(User(
        username=DEFAULT_ADMIN_USERNAME,
        password=hash_password(DEFAULT_ADMIN_PASSWORD),
        force_password_change=False,
    ))

    members = [
        TeamMember(name=name, email=f"{local}@{EMAIL_DOMAIN}", role=role,
                   team=SEED_TEAM, weekly_hours=hours)
        for name, local, role, hours in MEMBERS
    ]
    db.session.add_all(members)
    db.session.flush()

    goals = []
    for external_id, title, description, progress, owner in GOALS:
        goal = Goal(external_id=external_id, title=title, description=description,
                    quarter=SEED_QUARTER, status="active", progress=progress,
                    owner_id=members[owner].id, team=SEED_TEAM, source="manual")
        goals.append(goal)
    db.session.add_all(goals)
    db.session.flush()

    for goal_idx, member_idxs in GOAL_ASSIGNEES.items():
        for idx in member_idxs:
            db.session.add(GoalAssignee(goal_id=goals[goal_idx].id,
                                        team_member_id=members[idx].id, source="manual"))

    for external_id, title, status, effort, goal_idx, priority, assignee in TASKS:
        task = Task(external_id=external_id, title=title, status=status, effort_estimate=effort,
                    parent_goal_id=goals[goal_idx].id, priority=priority, source="manual")
        db.session.add(task)
        db.session.flush()
        db.session.add(TaskAssignee(task_id=task.id, team_member_id=members[assignee].id,
                                    source="manual"))

    for member_idx, goal_idx, pct in ALLOCATIONS:
        db.session.add(Allocation(
            team_member_id=members[member_idx].id, goal_id=goals[goal_idx].id,
            allocation_percentage=pct, start_date=ALLOCATION_START, end_date=ALLOCATION_END,
            source="manual",
        ))

    db.session.commit()
    counts = {
        "users": 1,
        "team_members": len(members),
        "goals": len(goals),
        "tasks": len(TASKS),
        "allocations": len(ALLOCATIONS),
    }
    logger.info("Database seeded: %s", counts)
    return counts
