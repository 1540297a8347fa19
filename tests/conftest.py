import itertools
import os
import threading
from datetime import timedelta

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from sqlalchemy.orm import sessionmaker

from bank.accounts import AccountService, HoldToken
from bank.database import Base, make_engine
from bank.errors import FundsAuthorityError
from bank.workflows import BankContext

CARD = "4111-1111-1111-0001"


class FakeAccountService(AccountService):
    """Account service double that records what happened to each hold."""

    def __init__(self):
        self.decline = None
        self.fail_withdraw = False
        self.fail_release = False
        self.lose_hold_reply = False
        self.held = []
        self.by_key = {}
        self.withdrawn = []
        self.released = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def place_hold(self, account_reference, amount, idempotency_key):
        if self.decline is not None:
            return self.decline
        with self._lock:
            hold = HoldToken(f"hold_{next(self._ids)}")
            self.held.append(hold)
            self.by_key[idempotency_key] = hold
        if self.lose_hold_reply:
            raise FundsAuthorityError("timed out waiting for hold")
        return hold

    def find_hold(self, idempotency_key):
        hold = self.by_key.get(idempotency_key)
        return hold if hold in self.open_holds() else None

    def withdraw_funds(self, hold):
        if self.fail_withdraw:
            raise FundsAuthorityError("withdraw refused")
        self.withdrawn.append(hold)

    def release_hold(self, hold):
        if self.fail_release:
            raise FundsAuthorityError("release refused")
        self.released.append(hold)

    def open_holds(self):
        return [h for h in self.held if h not in self.withdrawn and h not in self.released]


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'bank_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def accounts():
    return FakeAccountService()


@pytest.fixture
def ctx(accounts, session_factory):
    return BankContext(
        accounts=accounts,
        session_factory=session_factory,
        hold_recovery_grace=timedelta(minutes=5),
    )
