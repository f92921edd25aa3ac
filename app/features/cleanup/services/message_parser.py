"""
Parse raw Gmail message payloads into MessageSummary objects.

Parsing never raises for bad input: an unparseable From header falls back
to the raw header string, an undecodable body yields no unsubscribe link.
"""

import base64
import re

from app.features.cleanup.domain import MessageSummary

# "Display Name" <addr@example.com>  or  Display Name <addr@example.com>
_NAMED_ADDRESS_RE = re.compile(r'^\s*"?([^"<]*?)"?\s*<([^<>\s]+@[^<>\s]+)>\s*$')
_BARE_ADDRESS_RE = re.compile(r"^\s*<?([^<>\s@]+@[^<>\s@]+)>?\s*$")

_HEADER_URL_RE = re.compile(r"<(https?://[^>]+)>")
_BODY_UNSUBSCRIBE_RE = re.compile(r"https?://[^\s\"'<>]*unsubscribe[^\s\"'<>]*", re.IGNORECASE)


def parse_sender(from_header: str) -> tuple[str, str]:
    """
    Split a From header into (display name, address).

    Returns:
        (name, email). When the header matches neither pattern both values
        are the raw header string.
    """
    if not from_header:
        return "", ""

    match = _NAMED_ADDRESS_RE.match(from_header)
    if match:
        name = match.group(1).strip()
        email = match.group(2).strip()
        return name or email, email

    match = _BARE_ADDRESS_RE.match(from_header)
    if match:
        email = match.group(1).strip()
        return email, email

    raw = from_header.strip()
    return raw, raw


def extract_list_unsubscribe_url(header_value: str | None) -> str | None:
    """First http(s) URL in a List-Unsubscribe header, if any."""
    if not header_value:
        return None
    match = _HEADER_URL_RE.search(header_value)
    return match.group(1) if match else None


def decode_body_data(data: str) -> str:
    """Decode base64 URL-safe encoded data."""
    try:
        # Gmail uses URL-safe base64 without padding
        decoded_bytes = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
        return decoded_bytes.decode("utf-8", errors="ignore")
    except (ValueError, TypeError):
        return ""


def extract_body_text(payload: dict) -> str:
    """Concatenate every decodable text part of a message payload."""
    if not isinstance(payload, dict):
        return ""

    chunks: list[str] = []
    body = payload.get("body")
    if isinstance(body, dict) and isinstance(body.get("data"), str):
        chunks.append(decode_body_data(body["data"]))

    parts = payload.get("parts")
    if isinstance(parts, list):
        for part in parts:
            mime_type = part.get("mimeType", "") if isinstance(part, dict) else ""
            if mime_type.startswith("text/") or mime_type.startswith("multipart/"):
                chunks.append(extract_body_text(part))

    return "\n".join(chunk for chunk in chunks if chunk)


def find_body_unsubscribe_url(body_text: str) -> str | None:
    if not body_text:
        return None
    match = _BODY_UNSUBSCRIBE_RE.search(body_text)
    return match.group(0) if match else None


def _header_map(payload: dict) -> dict[str, str]:
    headers = payload.get("headers") if isinstance(payload, dict) else None
    if not isinstance(headers, list):
        return {}
    return {
        h["name"].lower(): h.get("value") or ""
        for h in headers
        if isinstance(h, dict) and isinstance(h.get("name"), str)
    }


def parse_message_summary(data: dict, account_id: str) -> MessageSummary | None:
    """
    Build a MessageSummary from a messages.get (format=full) payload.

    Returns:
        None when the payload has no message id.
    """
    if not isinstance(data, dict) or not isinstance(data.get("id"), str):
        return None

    payload = data.get("payload") or {}
    headers = _header_map(payload)

    sender, sender_email = parse_sender(headers.get("from", ""))

    list_unsubscribe = headers.get("list-unsubscribe")
    unsubscribe_link = extract_list_unsubscribe_url(list_unsubscribe)
    if not unsubscribe_link:
        unsubscribe_link = find_body_unsubscribe_url(extract_body_text(payload))

    label_ids = data.get("labelIds") or []
    source_label = "spam" if "SPAM" in label_ids else "trash"

    return MessageSummary(
        id=data["id"],
        sender=sender or "Unknown",
        sender_email=sender_email,
        subject=headers.get("subject") or "(No Subject)",
        snippet=data.get("snippet") or "",
        has_list_unsubscribe=bool(list_unsubscribe),
        source_label=source_label,
        account_id=account_id,
        unsubscribe_link=unsubscribe_link,
        date=headers.get("date"),
    )
