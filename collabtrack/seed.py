# collabtrack/seed.py
"""Demo data: five users, two projects, a handful of tasks.

Run with ``collabtrack-seed`` (or ``python -m collabtrack.seed``). Safe to run
twice: users are matched by email and projects by title.
"""
from __future__ import annotations

import argparse
import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from collabtrack.auth.security import hash_password
from collabtrack.config import Settings, load_settings
from collabtrack.database import Database
from collabtrack.models.comment import Comment
from collabtrack.models.enums import ProjectRole, ProjectStatus, TaskPriority, TaskStatus, UserRole
from collabtrack.models.project import Project, ProjectMember
from collabtrack.models.task import Task
from collabtrack.models.user import User

logger = logging.getLogger("collabtrack.seed")

DEMO_PASSWORD = "password123"

DEMO_USERS = [
    ("admin@collabtrack.com", "Admin User", UserRole.ADMIN),
    ("pm@collabtrack.com", "Project Manager", UserRole.MANAGER),
    ("member@collabtrack.com", "Team Member", UserRole.MEMBER),
    ("john@collabtrack.com", "John Doe", UserRole.MEMBER),
    ("jane@collabtrack.com", "Jane Smith", UserRole.MEMBER),
]


def _upsert_user(db: Session, email: str, name: str, role: UserRole, password_hash: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, name=name, role=role.value, password_hash=password_hash, is_active=True)
        db.add(user)
        db.flush()
    return user


def _project(db: Session, title: str, description: str, creator: User, members, deadline=None) -> tuple[Project, bool]:
    project = db.query(Project).filter(Project.title == title, Project.created_by == creator.id).first()
    if project is not None:
        return project, False

    project = Project(
        title=title,
        description=description,
        status=ProjectStatus.ACTIVE.value,
        deadline=deadline,
        created_by=creator.id,
    )
    project.members.append(ProjectMember(user_id=creator.id, role=ProjectRole.OWNER.value))
    for user, role in members:
        project.members.append(ProjectMember(user_id=user.id, role=role.value))
    db.add(project)
    db.flush()
    return project, True


def seed_demo_data(db: Session, settings: Settings) -> dict[str, User]:
    # one hash for everyone keeps seeding fast
    password_hash = hash_password(DEMO_PASSWORD, settings)
    users = {email: _upsert_user(db, email, name, role, password_hash) for email, name, role in DEMO_USERS}

    pm = users["pm@collabtrack.com"]
    member = users["member@collabtrack.com"]
    john = users["john@collabtrack.com"]
    jane = users["jane@collabtrack.com"]
    now = datetime.utcnow()

    website, created = _project(
        db,
        "Website Redesign",
        "Complete overhaul of company website with modern design and improved user experience",
        pm,
        [(member, ProjectRole.MEMBER), (john, ProjectRole.MEMBER)],
        deadline=now + timedelta(days=30),
    )
    if created:
        tasks = [
            Task(title="Design new homepage layout", description="Wireframes and mockups for the homepage",
                 status=TaskStatus.IN_PROGRESS.value, priority=TaskPriority.HIGH.value, assigned_to=member.id),
            Task(title="Set up development environment", description="Configure the build pipeline",
                 status=TaskStatus.DONE.value, priority=TaskPriority.MEDIUM.value, assigned_to=john.id),
            Task(title="Content migration", description="Move existing pages to the new CMS",
                 status=TaskStatus.BACKLOG.value, priority=TaskPriority.LOW.value),
        ]
        for task in tasks:
            task.project_id = website.id
            task.created_by = pm.id
            db.add(task)
        db.flush()
        db.add(Comment(content="First draft is up for review.", task_id=tasks[0].id, author_id=member.id))

    mobile, created = _project(
        db,
        "Mobile App Development",
        "Native mobile application for iOS and Android",
        pm,
        [(jane, ProjectRole.MANAGER), (john, ProjectRole.MEMBER)],
        deadline=now + timedelta(days=90),
    )
    if created:
        db.add(Task(title="API integration", description="Connect the app to the REST backend",
                    status=TaskStatus.TODO.value, priority=TaskPriority.URGENT.value,
                    project_id=mobile.id, created_by=jane.id, assigned_to=john.id,
                    due_date=now + timedelta(days=14)))

    db.commit()
    return users


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Seed the CollabTrack database with demo data")
    parser.add_argument("--env-file", default=None, help="Optional .env file to load")
    args = parser.parse_args(argv)

    settings = load_settings(args.env_file)
    logging.basicConfig(level=settings.log_level)

    database = Database(settings.database_url, echo=settings.sql_echo)
    database.initialize()
    try:
        with database.session() as db:
            users = seed_demo_data(db, settings)
    finally:
        database.dispose()

    logger.info("seed_complete", extra={"users": len(users)})
    for email, _name, _role in DEMO_USERS:
        print(f"{email} / {DEMO_PASSWORD}")


if __name__ == "__main__":
    main()
