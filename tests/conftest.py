"""
Shared fixtures: a fixed clock in the dashboard timezone and factories for
normalized tasks, client configurations and roster members.
"""
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import pytz

sys.path.insert(0, str(Path(__file__).parent.parent))

from models import MS_PER_HOUR, ProjectType, ProjectStatus, classify_status

EASTERN = pytz.timezone("US/Eastern")


def hours(value: float) -> int:
    return int(value * MS_PER_HOUR)


@pytest.fixture
def now():
    """Wednesday 15 May 2024, noon Eastern."""
    return EASTERN.localize(datetime(2024, 5, 15, 12, 0))


@pytest.fixture
def make_task(now):
    counter = {"n": 0}

    def _make(spent_hours=0, estimate_hours=0, assignees=("Alice",), status="in progress",
              updated=None, due=None, folder="Acme", **overrides):
        counter["n"] += 1
        task = {
            "id": f"t{counter['n']}",
            "name": f"Task {counter['n']}",
            "status": status,
            "status_bucket": classify_status(status),
            "time_spent_ms": hours(spent_hours),
            "time_estimate_ms": hours(estimate_hours),
            "assignees": list(assignees),
            "date_created": now - timedelta(days=30),
            "date_updated": updated if updated is not None else now - timedelta(hours=1),
            "due_date": due,
            "space": "Clients",
            "folder": folder,
            "list": "",
            "priority": None,
        }
        task.update(overrides)
        return task

    return _make


@pytest.fixture
def make_client():
    def _make(client_name="Acme", available_hours=100, revenue=10000, rate=100,
              project_type=ProjectType.RECURRING, status=ProjectStatus.ACTIVE, company="veza", **overrides):
        client = {
            "id": 1,
            "client_name": client_name,
            "project_type": project_type,
            "status": status,
            "available_hours": available_hours,
            "revenue": revenue,
            "average_delivery_hourly": rate,
            "folder_name": client_name,
            "folder_id": None,
            "list_name": None,
            "list_id": None,
            "company": company,
        }
        client.update(overrides)
        return client

    return _make


@pytest.fixture
def make_member():
    counter = {"n": 0}

    def _make(clickup_name="Alice", team="Design", weekly_hours=40, status="active", **overrides):
        counter["n"] += 1
        member = {
            "id": counter["n"],
            "clickup_name": clickup_name,
            "display_name": clickup_name,
            "team": team,
            "role": "Designer",
            "weekly_hours": weekly_hours,
            "status": status,
        }
        member.update(overrides)
        return member

    return _make
