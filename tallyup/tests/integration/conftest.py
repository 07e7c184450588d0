"""
tests/integration/conftest.py — Fixtures for the HTTP-level tests.

Design:
  - The app is created once per session with create_app("testing"). The
    testing config points at an in-memory SQLite database unless
    TEST_DATABASE_URL says otherwise.
  - Tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order.
  - Ledger rows are written straight through the ORM with the `ledger`
    fixture; this service only reads expenses and settlements, it never
    records them.
  - Tokens are minted locally with the testing JWT secret, standing in for
    the external auth provider.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import jwt
import pytest
from sqlalchemy import delete

from tallyup.app import create_app
from tallyup.app.extensions import db as _db
from tallyup.app.models.expense import Expense
from tallyup.app.models.group import Group
from tallyup.app.models.membership import Membership
from tallyup.app.models.settlement import Settlement
from tallyup.app.models.split import Split
from tallyup.app.models.user import User


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield

    with app.app_context():
        _db.session.rollback()
        for model in (Split, Settlement, Expense, Membership, Group, User):
            _db.session.execute(delete(model))
        _db.session.commit()


@pytest.fixture
def client(app):
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Auth
# ═══════════════════════════════════════════════════════════════════════════

def _make_token(app, user_id: int, expires_in: timedelta) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": str(user_id), "iat": now, "exp": now + expires_in},
        app.config["JWT_SECRET_KEY"],
        algorithm=app.config["JWT_ALGORITHM"],
    )


@pytest.fixture
def auth_headers(app):
    """auth_headers(user_id) -> {"Authorization": "Bearer <token>"}"""
    def _headers(user_id: int, expires_in: timedelta = timedelta(hours=1)) -> dict:
        return {"Authorization": f"Bearer {_make_token(app, user_id, expires_in)}"}
    return _headers


# ═══════════════════════════════════════════════════════════════════════════
# Ledger seeding
# ═══════════════════════════════════════════════════════════════════════════

class LedgerBuilder:
    """
    Writes users, groups and ledger rows and returns their ids.

    Each call commits in its own app context so the rows are visible to
    the requests a test makes afterwards.
    """

    def __init__(self, app):
        self.app = app

    def _save(self, obj) -> int:
        with self.app.app_context():
            _db.session.add(obj)
            _db.session.commit()
            return obj.id

    def user(self, name: str, email: str | None = None) -> int:
        return self._save(User(name=name, email=email or f"{name.lower()}@example.com"))

    def group(self, owner_id: int, *member_ids: int, name: str = "Trip") -> int:
        group = Group(name=name, owner_user_id=owner_id)
        group.memberships = [
            Membership(user_id=uid) for uid in dict.fromkeys((owner_id, *member_ids))
        ]
        return self._save(group)

    def join(self, group_id: int, user_id: int) -> int:
        return self._save(Membership(group_id=group_id, user_id=user_id))

    def expense(
            self,
            group_id: int,
            paid_by: int,
            splits: dict,
            description: str = "Dinner",
            day: int = 1,
            deleted: bool = False,
    ) -> int:
        amounts = {uid: Decimal(str(value)) for uid, value in splits.items()}
        expense = Expense(
            group_id=group_id,
            paid_by_user_id=paid_by,
            description=description,
            amount=sum(amounts.values(), Decimal("0")),
            date=datetime(2024, 1, day, tzinfo=timezone.utc),
            deleted_at=datetime(2024, 2, 1, tzinfo=timezone.utc) if deleted else None,
            splits=[Split(user_id=uid, amount=amt) for uid, amt in amounts.items()],
        )
        return self._save(expense)

    def settlement(self, group_id: int, paid_by: int, paid_to: int, amount) -> int:
        return self._save(Settlement(
            group_id=group_id,
            paid_by_user_id=paid_by,
            paid_to_user_id=paid_to,
            amount=Decimal(str(amount)),
        ))


@pytest.fixture
def ledger(app):
    return LedgerBuilder(app)
