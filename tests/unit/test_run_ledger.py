import pytest

from app.features.cleanup.services.run_ledger import (
    HISTORY_PAGE_SIZE,
    RunLedger,
    compute_top_senders,
)


def test_top_senders_counts_case_insensitively(make_message):
    deleted = [
        make_message("m1", sender_email="Promo@Shop.example", sender="Shop"),
        make_message("m2", sender_email="promo@shop.example", sender="Shop Deals"),
        make_message("m3", sender_email="news@paper.example", sender="Paper"),
    ]

    top = compute_top_senders(deleted)

    assert [s.to_dict() for s in top] == [
        {"email": "promo@shop.example", "name": "Shop", "count": 2},
        {"email": "news@paper.example", "name": "Paper", "count": 1},
    ]


def test_top_senders_keeps_five_highest(make_message):
    deleted = []
    for index in range(7):
        deleted.extend(
            make_message(f"m{index}-{n}", sender_email=f"s{index}@x.example")
            for n in range(index + 1)
        )

    top = compute_top_senders(deleted)

    assert len(top) == 5
    assert [s.count for s in top] == [7, 6, 5, 4, 3]
    assert top[0].email == "s6@x.example"


def test_top_senders_empty():
    assert compute_top_senders([]) == []


@pytest.mark.asyncio
async def test_run_summary_is_recorded(fake_ledger, make_message):
    ledger = RunLedger(fake_ledger)

    summary = await ledger.record_run_summary(
        "user-123",
        scanned=10,
        deleted=1,
        unsubscribed=0,
        top_senders=compute_top_senders([make_message("m1")]),
    )

    assert summary.id == "run-1"
    assert (await ledger.latest_run("user-123")).id == "run-1"
    assert await ledger.dismiss_run("user-123", "run-1") is True
    assert await ledger.latest_run("user-123") is None
    assert await ledger.dismiss_run("someone-else", "run-1") is False


@pytest.mark.asyncio
async def test_history_limit_is_capped():
    class RecordingRepository:
        limits = []

        @classmethod
        async def list_history(cls, user_id, limit):
            cls.limits.append(limit)
            return []

    ledger = RunLedger(RecordingRepository)

    await ledger.list_history("user-123", limit=10_000)
    await ledger.list_history("user-123", limit=20)

    assert RecordingRepository.limits == [HISTORY_PAGE_SIZE, 20]
