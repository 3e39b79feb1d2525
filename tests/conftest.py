"""Shared fixtures for tests."""
import pytest

from src.scheduler import ManualScheduler
from src.session_storage import SessionStorage


# 2023-11-14T22:13:20Z, so session timestamps look like real epoch seconds
START_TIME = 1_700_000_000.0


@pytest.fixture
def sample_tasks():
    """Return sample tasks as the task backend returns them."""
    return [
        {
            "_id": "t1",
            "title": "Team meeting",
            "description": "Weekly sync with the design team",
            "priority": "High",
            "dueDate": "2023-11-15T10:00:00Z",
            "completed": False,
            "createdAt": "2023-11-01T09:00:00Z",
        },
        {
            "_id": "t2",
            "title": "Shopping",
            "description": "buy milk and eggs",
            "priority": "Low",
            "dueDate": "2023-11-20T18:00:00Z",
            "completed": False,
            "createdAt": "2023-11-03T09:00:00Z",
        },
        {
            "_id": "t3",
            "title": "Meeting notes",
            "description": "Write up notes from the planning meeting",
            "priority": "Medium",
            "dueDate": "2023-11-14T12:00:00Z",
            "completed": True,
            "createdAt": "2023-11-02T09:00:00Z",
        },
        {
            "_id": "t4",
            "title": "Pay rent",
            "description": "",
            "priority": "High",
            "dueDate": "2023-12-01T00:00:00Z",
            "completed": False,
            "createdAt": "2023-11-04T09:00:00Z",
        },
    ]


@pytest.fixture
def scheduler():
    """Virtual clock starting at a realistic epoch time."""
    return ManualScheduler(start=START_TIME)


@pytest.fixture
def storage():
    """Empty session storage for one browsing context."""
    return SessionStorage()


@pytest.fixture
def notifications_db_path(tmp_path):
    """Return path for a temporary notifications database."""
    return tmp_path / "test_notifications.db"
