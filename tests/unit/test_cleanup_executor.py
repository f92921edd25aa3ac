from unittest.mock import AsyncMock, MagicMock

import pytest

from app.features.cleanup.domain import ClassificationResult
from app.features.cleanup.services.cleanup_executor import CleanupExecutor, select_for_auto_delete
from app.services.google_gmail_service import GoogleGmailError


def _labels(**tiers) -> dict[str, ClassificationResult]:
    return {
        message_id: ClassificationResult(message_id, tier, "reason")
        for message_id, tier in tiers.items()
    }


def test_only_definitely_spam_is_selected(make_message):
    messages = [make_message("m1"), make_message("m2"), make_message("m3"), make_message("m4")]
    labels = _labels(m1="definitely_spam", m2="likely_spam", m3="might_be_important")

    selected = select_for_auto_delete(messages, labels, auto_approve=True)

    assert [m.id for m in selected] == ["m1"]


def test_nothing_selected_without_auto_approve(make_message):
    messages = [make_message("m1")]

    assert select_for_auto_delete(messages, _labels(m1="definitely_spam"), False) == []


def test_safe_and_already_deleted_messages_are_skipped(make_message):
    safe = make_message("m1")
    safe.marked_safe = True
    messages = [safe, make_message("m2"), make_message("m3")]
    labels = _labels(m1="definitely_spam", m2="definitely_spam", m3="definitely_spam")

    selected = select_for_auto_delete(messages, labels, True, already_deleted={"m2"})

    assert [m.id for m in selected] == ["m3"]


@pytest.mark.asyncio
async def test_unsubscribe_with_header_counts_as_attempted(make_message):
    gmail = MagicMock()
    gmail.delete_message = AsyncMock()
    message = make_message("m1", has_list_unsubscribe=True)

    outcome = await CleanupExecutor(gmail=gmail).unsubscribe_and_delete("token", message)

    assert outcome.method == "auto_header"
    assert outcome.unsubscribe_attempted is True
    assert outcome.web_link is None
    assert outcome.delete.effectively_deleted is True


@pytest.mark.asyncio
async def test_body_link_is_returned_and_delete_still_runs(make_message):
    gmail = MagicMock()
    gmail.delete_message = AsyncMock(side_effect=GoogleGmailError("gone", status_code=404))
    message = make_message("m1", unsubscribe_link="https://shop.example/unsub")

    outcome = await CleanupExecutor(gmail=gmail).unsubscribe_and_delete("token", message)

    assert outcome.method == "delete_only"
    assert outcome.unsubscribe_attempted is False
    assert outcome.web_link == "https://shop.example/unsub"
    assert outcome.delete.not_found is True
    assert outcome.delete.effectively_deleted is True
