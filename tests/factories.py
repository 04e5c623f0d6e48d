"""Plain announcement rows and a fixed clock for the pure core tests."""
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def announcement(**fields):
    """Plain row for the pure visibility/ranking functions."""
    values = {
        "id": uuid.uuid4().hex,
        "title": "Hackathon",
        "description": "Sign up by Friday",
        "category": "tech",
        "status": "active",
        "is_active": True,
        "is_emergency": False,
        "created_at": NOW,
        "expiry_date": None,
        "scheduled_at": None,
        "priority_until": None,
    }
    values.update(fields)
    return SimpleNamespace(**values)
