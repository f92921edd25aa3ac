import re

import pytest
import pytest_asyncio

from app.features.cleanup.services.mailbox_sync import MailboxSync
from app.services.google_gmail_service import GMAIL_API_BASE_URL, GoogleGmailService

SPAM_LIST_URL = re.compile(re.escape(f"{GMAIL_API_BASE_URL}/users/me/messages?") + ".*labelIds=SPAM")
TRASH_LIST_URL = re.compile(re.escape(f"{GMAIL_API_BASE_URL}/users/me/messages?") + ".*labelIds=TRASH")


def _page(ids, next_page_token=None):
    body = {"messages": [{"id": i, "threadId": f"t-{i}"} for i in ids]}
    if next_page_token:
        body["nextPageToken"] = next_page_token
    return body


def _message(message_id, sender="Shop <promo@shop.example>", labels=("SPAM",)):
    return {
        "id": message_id,
        "labelIds": list(labels),
        "snippet": "Big sale",
        "payload": {
            "headers": [
                {"name": "From", "value": sender},
                {"name": "Subject", "value": f"Offer {message_id}"},
            ]
        },
    }


def _message_url(message_id):
    return f"{GMAIL_API_BASE_URL}/users/me/messages/{message_id}?format=full"


@pytest_asyncio.fixture
async def gmail():
    service = GoogleGmailService()
    yield service
    await service.close()


@pytest.mark.asyncio
async def test_pagination_follows_next_page_token(httpx_mock, gmail):
    httpx_mock.add_response(method="GET", url=SPAM_LIST_URL, json=_page(["a", "b"], "p2"))
    httpx_mock.add_response(method="GET", url=SPAM_LIST_URL, json=_page(["c"], "p3"))
    httpx_mock.add_response(method="GET", url=SPAM_LIST_URL, json=_page(["d"]))

    ids = await MailboxSync(gmail).list_all_message_ids("token", "SPAM")

    assert ids == ["a", "b", "c", "d"]
    requests = httpx_mock.get_requests()
    assert "pageToken" not in requests[0].url.params
    assert requests[1].url.params["pageToken"] == "p2"
    assert requests[2].url.params["pageToken"] == "p3"
    assert requests[0].headers["Authorization"] == "Bearer token"


@pytest.mark.asyncio
async def test_failed_page_returns_collected_prefix(httpx_mock, gmail):
    httpx_mock.add_response(method="GET", url=SPAM_LIST_URL, json=_page(["a", "b"], "p2"))
    httpx_mock.add_response(
        method="GET",
        url=SPAM_LIST_URL,
        status_code=500,
        json={"error": {"code": 500, "message": "Backend Error"}},
    )

    ids = await MailboxSync(gmail).list_all_message_ids("token", "SPAM")

    assert ids == ["a", "b"]


@pytest.mark.asyncio
async def test_listing_stops_at_cap(httpx_mock, gmail):
    first = [f"a{i}" for i in range(300)]
    second = [f"b{i}" for i in range(300)]
    httpx_mock.add_response(method="GET", url=SPAM_LIST_URL, json=_page(first, "p2"))
    httpx_mock.add_response(method="GET", url=SPAM_LIST_URL, json=_page(second, "p3"))

    ids = await MailboxSync(gmail).list_all_message_ids("token", "SPAM")

    assert len(ids) == 500
    assert ids[-1] == "b199"
    assert len(httpx_mock.get_requests()) == 2


@pytest.mark.asyncio
async def test_fetch_details_skips_failed_messages(httpx_mock, gmail):
    httpx_mock.add_response(method="GET", url=_message_url("m1"), json=_message("m1"))
    httpx_mock.add_response(
        method="GET",
        url=_message_url("m2"),
        status_code=404,
        json={"error": {"code": 404, "message": "Requested entity was not found."}},
    )
    httpx_mock.add_response(method="GET", url=_message_url("m3"), json=_message("m3"))

    summaries = await MailboxSync(gmail).fetch_details(
        "token", ["m1", "m2", "m3"], "acct-1", batch_size=2
    )

    assert [s.id for s in summaries] == ["m1", "m3"]
    assert summaries[0].sender_email == "promo@shop.example"
    assert summaries[0].account_id == "acct-1"


@pytest.mark.asyncio
async def test_sync_account_merges_spam_and_trash(httpx_mock, gmail):
    httpx_mock.add_response(method="GET", url=SPAM_LIST_URL, json=_page(["m1", "m2"]))
    httpx_mock.add_response(method="GET", url=TRASH_LIST_URL, json=_page(["m2", "m3"]))
    httpx_mock.add_response(method="GET", url=_message_url("m1"), json=_message("m1"))
    httpx_mock.add_response(method="GET", url=_message_url("m2"), json=_message("m2"))
    httpx_mock.add_response(
        method="GET", url=_message_url("m3"), json=_message("m3", labels=("TRASH",))
    )

    summaries = await MailboxSync(gmail).sync_account("token", "acct-1")

    assert [s.id for s in summaries] == ["m1", "m2", "m3"]
    assert summaries[2].source_label == "trash"


@pytest.mark.asyncio
async def test_empty_labels(httpx_mock, gmail):
    httpx_mock.add_response(method="GET", url=SPAM_LIST_URL, json={"resultSizeEstimate": 0})
    httpx_mock.add_response(method="GET", url=TRASH_LIST_URL, json={})

    assert await MailboxSync(gmail).sync_account("token", "acct-1") == []
