import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from app.features.cleanup.services.spam_classifier import (
    CHUNK_SIZE,
    FEEDBACK_SPAM_REASONING,
    SpamClassifier,
    build_user_message,
    extract_json_array,
    parse_classifications,
)


def _completion(content: str | None):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _fake_client(*responses):
    create = AsyncMock(side_effect=list(responses))
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return client, create


def _status_error(cls, status_code: int):
    request = httpx.Request("POST", "https://ai.example/v1/chat/completions")
    response = httpx.Response(status_code, request=request)
    return cls("gateway error", response=response, body=None)


def _answer(*items) -> str:
    return json.dumps(
        [{"id": i, "spamConfidence": c, "reasoning": r} for i, c, r in items]
    )


def test_extract_json_array_skips_surrounding_text():
    text = 'Sure! Here you go:\n[{"id": "m1"}]\nLet me know [if] you need more.'
    assert extract_json_array(text) == [{"id": "m1"}]


def test_extract_json_array_none_for_non_json():
    assert extract_json_array("I cannot classify these emails.") is None
    assert extract_json_array("[not json") is None
    assert extract_json_array("") is None


def test_parse_classifications_fills_missing_and_invalid_items(make_message):
    messages = [
        make_message("m1", has_list_unsubscribe=True),
        make_message("m2"),
        make_message("m3", has_list_unsubscribe=True),
    ]
    text = json.dumps(
        [
            {"id": "m1", "spamConfidence": "definitely_spam", "reasoning": "Phishing"},
            {"id": "m2", "spamConfidence": "super_spam", "reasoning": "bad tier"},
            {"id": "unknown", "spamConfidence": "likely_spam", "reasoning": "not ours"},
        ]
    )

    results, parsed = parse_classifications(text, messages)

    assert parsed is True
    assert [r.message_id for r in results] == ["m1", "m2", "m3"]
    assert results[0].spam_confidence == "definitely_spam"
    assert results[1].spam_confidence == "might_be_important"
    assert results[2].spam_confidence == "likely_spam"


def test_build_user_message_contains_summaries(make_message):
    message = make_message("m1", has_list_unsubscribe=True)
    text = build_user_message([message])

    assert text.startswith("Analyze these emails:\n")
    payload = json.loads(text.split("\n", 1)[1])
    assert payload == [
        {
            "id": "m1",
            "sender": "Shop",
            "senderEmail": "promo@shop.example",
            "subject": "Subject m1",
            "snippet": "snippet",
            "hasListUnsubscribe": True,
        }
    ]


@pytest.mark.asyncio
async def test_non_json_answer_falls_back_to_heuristic(make_message):
    client, _ = _fake_client(_completion("Sorry, I can't help with that."))
    messages = [make_message("m1", has_list_unsubscribe=True), make_message("m2")]

    batch = await SpamClassifier(client=client).classify(messages)

    by_id = batch.by_id()
    assert by_id["m1"].spam_confidence == "likely_spam"
    assert by_id["m2"].spam_confidence == "might_be_important"
    assert batch.stopped_reason is None


@pytest.mark.asyncio
async def test_known_spam_senders_skip_the_model(make_message):
    client, create = _fake_client()
    known = [make_message("m1")]

    batch = await SpamClassifier(client=client).classify([], known_spam=known)

    create.assert_not_called()
    assert batch.results[0].spam_confidence == "definitely_spam"
    assert batch.results[0].reasoning == FEEDBACK_SPAM_REASONING


@pytest.mark.asyncio
async def test_messages_are_chunked_sequentially(make_message):
    messages = [make_message(f"m{i}") for i in range(CHUNK_SIZE + 5)]
    first = _answer(*[(f"m{i}", "likely_spam", "Promo") for i in range(CHUNK_SIZE)])
    second = _answer(*[(f"m{i}", "definitely_spam", "Scam") for i in range(CHUNK_SIZE, CHUNK_SIZE + 5)])
    client, create = _fake_client(_completion(first), _completion(second))

    batch = await SpamClassifier(client=client).classify(messages)

    assert create.await_count == 2
    assert len(batch.results) == CHUNK_SIZE + 5
    assert batch.by_id()[f"m{CHUNK_SIZE}"].spam_confidence == "definitely_spam"


@pytest.mark.asyncio
async def test_rate_limit_stops_later_chunks_but_keeps_earlier(make_message):
    messages = [make_message(f"m{i}") for i in range(CHUNK_SIZE * 2)]
    first = _answer(*[(f"m{i}", "likely_spam", "Promo") for i in range(CHUNK_SIZE)])
    client, create = _fake_client(
        _completion(first), _status_error(openai.RateLimitError, 429)
    )

    batch = await SpamClassifier(client=client).classify(messages)

    assert create.await_count == 2
    assert batch.stopped_reason == "rate_limited"
    assert len(batch.results) == CHUNK_SIZE
    assert batch.unclassified_ids == [f"m{i}" for i in range(CHUNK_SIZE, CHUNK_SIZE * 2)]


@pytest.mark.asyncio
async def test_quota_exhausted_is_reported(make_message):
    client, _ = _fake_client(_status_error(openai.APIStatusError, 402))

    batch = await SpamClassifier(client=client).classify([make_message("m1")])

    assert batch.stopped_reason == "quota_exhausted"
    assert batch.results == []


@pytest.mark.asyncio
async def test_server_error_degrades_chunk_to_heuristic(make_message):
    client, _ = _fake_client(_status_error(openai.InternalServerError, 500))

    batch = await SpamClassifier(client=client).classify(
        [make_message("m1", has_list_unsubscribe=True)]
    )

    assert batch.stopped_reason is None
    assert batch.results[0].spam_confidence == "likely_spam"


@pytest.mark.asyncio
async def test_missing_api_key_degrades_to_heuristic(monkeypatch, make_message):
    monkeypatch.setattr("app.config.settings.AI_API_KEY", None)

    batch = await SpamClassifier().classify([make_message("m1")])

    assert batch.results[0].spam_confidence == "might_be_important"


@pytest.mark.asyncio
async def test_earlier_stop_skips_the_model(make_message):
    client, create = _fake_client()
    classifier = SpamClassifier(client=client)

    batch = await classifier.classify(
        [make_message("m1"), make_message("m2")],
        known_spam=[make_message("m3")],
        stopped_reason="quota_exhausted",
    )

    create.assert_not_called()
    assert batch.stopped_reason == "quota_exhausted"
    assert batch.unclassified_ids == ["m1", "m2"]
    assert [(r.message_id, r.reasoning) for r in batch.results] == [("m3", FEEDBACK_SPAM_REASONING)]
