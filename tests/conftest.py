import copy
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from supabase import PostgrestAPIError

# Ensure repo root on sys.path for imports like `classrank...`
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from classrank.models.leaderboard import ScoreEntry  # noqa: E402

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

UNIQUE_KEYS = {
    "leaderboards": ("assignment_ref",),
    "badges": ("id",),
    "milestones": ("student_ref", "badge_id", "status"),
}


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Just enough of the postgrest query builder for the store."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self._limit = None
        self._order = None

    def select(self, *columns):
        self.op = "select"
        return self

    def insert(self, row):
        self.op = "insert"
        self.payload = row
        return self

    def update(self, row):
        self.op = "update"
        self.payload = row
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def _matches(self, row):
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self):
        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "insert":
            keys = UNIQUE_KEYS.get(self.table, ())
            if keys and any(all(r.get(k) == self.payload.get(k) for k in keys) for r in rows):
                raise PostgrestAPIError({
                    "code": "23505",
                    "message": "duplicate key value violates unique constraint",
                    "details": "",
                    "hint": "",
                })
            rows.append(copy.deepcopy(self.payload))
            return FakeResponse([copy.deepcopy(self.payload)])

        if self.op == "update":
            hook = self.db.update_hooks.pop(self.table, None)
            if hook is not None:
                hook(rows)
            matched = [row for row in rows if self._matches(row)]
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matched))

        matched = [copy.deepcopy(row) for row in rows if self._matches(row)]
        if self._order:
            column, desc = self._order
            matched.sort(key=lambda row: (row.get(column) is None, row.get(column) or ""), reverse=desc)
        if self._limit is not None:
            matched = matched[:self._limit]
        return FakeResponse(matched)


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.update_hooks = {}

    def table(self, name):
        return FakeQuery(self, name)

    def seed(self, table, *rows):
        self.tables.setdefault(table, []).extend(copy.deepcopy(list(rows)))

    def before_next_update(self, table, hook):
        """Run `hook(rows)` right before the next update on `table`, like a rival writer."""
        self.update_hooks[table] = hook


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def make_entry():
    def _make(student_ref, score, max_score=100, minutes=0, time_spent=0, **extra):
        return ScoreEntry(
            student_ref=student_ref,
            score=score,
            max_score=max_score,
            submitted_at=BASE_TIME + timedelta(minutes=minutes),
            time_spent=time_spent,
            **extra,
        )
    return _make
