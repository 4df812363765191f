import logging

import pytest
from fastapi import BackgroundTasks

from collabtrack.database import Database
from collabtrack.models.enums import NotificationType
from collabtrack.models.notification import Notification
from collabtrack.models.user import User
from collabtrack.notification.fanout import FanoutEvent, fan_out
from collabtrack.realtime.hub import BroadcastHub


def test_recipients_are_unique_and_exclude_actor():
    event = FanoutEvent(
        type=NotificationType.COMMENT_ADDED,
        actor_id=1,
        title="t",
        message="m",
        recipients=[3, None, 1, 2, 3, 2],
    )
    assert event.resolved_recipients() == [3, 2]


@pytest.fixture
def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'fanout.sqlite3'}")
    database.initialize()
    with database.session() as session:
        yield session
    database.dispose()


def test_failed_insert_does_not_block_other_recipients(db, caplog):
    actor = User(name="Actor", email="actor@example.com", password_hash="x")
    other = User(name="Other", email="other@example.com", password_hash="x")
    db.add_all([actor, other])
    db.commit()

    background_tasks = BackgroundTasks()
    event = FanoutEvent(
        type=NotificationType.TASK_UPDATED,
        actor_id=actor.id,
        title="Task Status Updated",
        message="m",
        # 9999 violates the users foreign key
        recipients=[9999, other.id],
        related_id=42,
    )

    with caplog.at_level(logging.ERROR, logger="collabtrack.notification"):
        created = fan_out(db, BroadcastHub(), background_tasks, event)

    assert [n.user_id for n in created] == [other.id]
    assert db.query(Notification).count() == 1
    assert len(background_tasks.tasks) == 1
    assert any(record.getMessage() == "notification_persist_failed" for record in caplog.records)


def test_every_notification_type_has_a_trigger():
    # each type is produced by a router; unused kinds are not declared
    assert {t.value for t in NotificationType} == {
        "task_assigned",
        "task_updated",
        "comment_added",
        "project_invite",
    }
