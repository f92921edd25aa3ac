import base64
from datetime import UTC, datetime

import pytest

from app.auth.verify import auth_dependency
from app.features.cleanup.domain import (
    CleanupHistoryEntry,
    CleanupRunSummary,
    MailboxAccount,
    MessageSummary,
    ScheduleConfig,
    SenderFeedback,
)
from app.services.infrastructure.encryption_service import reset_cipher_cache

TEST_ENCRYPTION_KEY = base64.b64encode(b"test-secret-material-for-tokens!").decode("ascii")


@pytest.fixture(autouse=True)
def encryption_key(monkeypatch):
    monkeypatch.setattr("app.config.settings.TOKEN_ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    reset_cipher_cache()
    yield
    reset_cipher_cache()


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


def make_message(
    message_id: str,
    sender_email: str = "promo@shop.example",
    sender: str = "Shop",
    has_list_unsubscribe: bool = False,
    unsubscribe_link: str | None = None,
    account_id: str = "acct-1",
) -> MessageSummary:
    return MessageSummary(
        id=message_id,
        sender=sender,
        sender_email=sender_email,
        subject=f"Subject {message_id}",
        snippet="snippet",
        has_list_unsubscribe=has_list_unsubscribe,
        source_label="spam",
        account_id=account_id,
        unsubscribe_link=unsubscribe_link,
    )


class FakeAccountRepository:
    def __init__(self, accounts: list[MailboxAccount] | None = None):
        self.accounts: dict[str, MailboxAccount] = {a.id: a for a in accounts or []}
        self.token_updates: list[dict] = []

    async def get_account(self, user_id, account_id):
        account = self.accounts.get(account_id)
        return account if account and account.user_id == user_id else None

    async def get_primary_account(self, user_id):
        for account in self.accounts.values():
            if account.user_id == user_id and account.is_primary:
                return account
        return None

    async def list_connected_accounts(self, user_id):
        connected = [
            a for a in self.accounts.values() if a.user_id == user_id and a.access_token_enc
        ]
        return sorted(connected, key=lambda a: not a.is_primary)

    async def get_any_connected_account(self, user_id):
        accounts = await self.list_connected_accounts(user_id)
        return accounts[0] if accounts else None

    async def update_access_token(
        self, account_id, access_token_enc, token_expires_at, refresh_token_enc=None
    ):
        self.token_updates.append(
            {
                "account_id": account_id,
                "access_token_enc": access_token_enc,
                "token_expires_at": token_expires_at,
                "refresh_token_enc": refresh_token_enc,
            }
        )

    async def upsert_account(
        self, user_id, email, access_token_enc, refresh_token_enc, token_expires_at, make_primary
    ):
        for account in self.accounts.values():
            if account.user_id == user_id and account.email == email.lower():
                account.access_token_enc = access_token_enc
                account.refresh_token_enc = refresh_token_enc or account.refresh_token_enc
                account.token_expires_at = token_expires_at
                account.is_primary = account.is_primary or make_primary
                return account

        account = MailboxAccount(
            id=f"acct-{len(self.accounts) + 1}",
            user_id=user_id,
            email=email.lower(),
            access_token_enc=access_token_enc,
            refresh_token_enc=refresh_token_enc,
            token_expires_at=token_expires_at,
            is_primary=make_primary,
        )
        self.accounts[account.id] = account
        return account

    async def delete_account(self, user_id, account_id):
        account = await self.get_account(user_id, account_id)
        if account:
            del self.accounts[account_id]
        return account

    async def promote_primary(self, user_id):
        accounts = await self.list_connected_accounts(user_id)
        if not accounts:
            return None
        accounts[0].is_primary = True
        return accounts[0].id


class FakeScheduleRepository:
    def __init__(self, schedules: list[ScheduleConfig] | None = None, fail_advance: bool = False):
        self.schedules: dict[str, ScheduleConfig] = {s.user_id: s for s in schedules or []}
        self.advanced: list[dict] = []
        self.fail_advance = fail_advance

    async def list_due(self, now):
        due = [s for s in self.schedules.values() if s.is_due(now)]
        return sorted(due, key=lambda s: s.next_run_at)

    async def get_for_user(self, user_id):
        return self.schedules.get(user_id)

    async def advance(self, schedule_id, last_run_at, next_run_at):
        if self.fail_advance:
            raise RuntimeError("advance failed")
        self.advanced.append(
            {"schedule_id": schedule_id, "last_run_at": last_run_at, "next_run_at": next_run_at}
        )
        for schedule in self.schedules.values():
            if schedule.id == schedule_id:
                schedule.last_run_at = last_run_at
                schedule.next_run_at = next_run_at

    async def upsert_for_user(self, user_id, frequency, auto_approve, is_active, next_run_at):
        existing = self.schedules.get(user_id)
        schedule = ScheduleConfig(
            id=existing.id if existing else f"sched-{user_id}",
            user_id=user_id,
            frequency=frequency,
            auto_approve=auto_approve,
            is_active=is_active,
            last_run_at=existing.last_run_at if existing else None,
            next_run_at=next_run_at,
        )
        self.schedules[user_id] = schedule
        return schedule


class FakeFeedbackRepository:
    def __init__(self):
        self.rows: dict[tuple[str, str], SenderFeedback] = {}
        self._clock = 0

    async def load_preferences(self, user_id):
        return {
            sender: feedback.marked_as_spam
            for (owner, sender), feedback in self.rows.items()
            if owner == user_id
        }

    async def list_for_user(self, user_id):
        rows = [f for (owner, _), f in self.rows.items() if owner == user_id]
        return sorted(rows, key=lambda f: f.updated_at, reverse=True)

    async def upsert(self, user_id, sender_email, sender_name, marked_as_spam):
        self._clock += 1
        updated_at = datetime(2026, 1, 1, 0, 0, self._clock, tzinfo=UTC)
        existing = self.rows.get((user_id, sender_email))
        if existing:
            existing.marked_as_spam = marked_as_spam
            existing.sender_name = sender_name or existing.sender_name
            existing.feedback_count += 1
            existing.updated_at = updated_at
            return existing

        feedback = SenderFeedback(
            id=f"fb-{len(self.rows) + 1}",
            user_id=user_id,
            sender_email=sender_email,
            sender_name=sender_name,
            marked_as_spam=marked_as_spam,
            feedback_count=1,
            created_at=updated_at,
            updated_at=updated_at,
        )
        self.rows[(user_id, sender_email)] = feedback
        return feedback

    async def delete(self, user_id, sender_email):
        return self.rows.pop((user_id, sender_email), None) is not None


class FakeLedgerRepository:
    def __init__(self):
        self.history: list[CleanupHistoryEntry] = []
        self.runs: list[CleanupRunSummary] = []

    async def insert_history(self, entry):
        self.history.append(entry)

    async def find_deleted_message_ids(self, user_id, message_ids):
        wanted = set(message_ids)
        return {
            e.email_id for e in self.history if e.user_id == user_id and e.deleted and e.email_id in wanted
        }

    async def list_history(self, user_id, limit):
        rows = [e for e in self.history if e.user_id == user_id]
        return list(reversed(rows))[:limit]

    async def insert_run(self, summary):
        summary.id = f"run-{len(self.runs) + 1}"
        summary.run_at = datetime.now(UTC)
        self.runs.append(summary)
        return summary

    async def latest_undismissed_run(self, user_id):
        for run in reversed(self.runs):
            if run.user_id == user_id and not run.is_dismissed:
                return run
        return None

    async def dismiss_run(self, user_id, run_id):
        for run in self.runs:
            if run.id == run_id and run.user_id == user_id:
                run.is_dismissed = True
                return True
        return False


@pytest.fixture
def fake_accounts():
    return FakeAccountRepository()


@pytest.fixture
def fake_schedules():
    return FakeScheduleRepository()


@pytest.fixture
def fake_feedback():
    return FakeFeedbackRepository()


@pytest.fixture
def fake_ledger():
    return FakeLedgerRepository()


@pytest.fixture(name="make_message")
def make_message_fixture():
    return make_message
