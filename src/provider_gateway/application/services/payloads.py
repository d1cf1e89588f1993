"""Message payload builders.

Each builder shapes a caller's message into the field set every provider
for that message type understands.  Fields the caller did not supply get
neutral defaults; the gateway itself treats the result as opaque.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

PayloadBuilder = Callable[[Mapping[str, Any]], dict[str, Any]]


def build_email_payload(message: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "to": message.get("to", []),
        "cc": message.get("cc", []),
        "bcc": message.get("bcc", []),
        "from": message.get("from"),
        "reply_to": message.get("reply_to"),
        "subject": message.get("subject", ""),
        "html_body": message.get("html_body", ""),
        "text_body": message.get("text_body", ""),
        "attachments": message.get("attachments", []),
        "headers": message.get("headers", {}),
        "template_id": message.get("template_id"),
        "template_data": message.get("template_data", {}),
    }


def build_sms_payload(message: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "to": message.get("to", ""),
        "from": message.get("from"),
        "body": message.get("body", ""),
        "media_urls": message.get("media_urls", []),
    }


def build_push_payload(message: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "recipients": message.get("recipients", []),
        "title": message.get("title", ""),
        "body": message.get("body", ""),
        "icon": message.get("icon"),
        "image": message.get("image"),
        "url": message.get("url"),
        "data": message.get("data", {}),
        "buttons": message.get("buttons", []),
    }


def build_whatsapp_payload(message: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "to": message.get("to", ""),
        "from": message.get("from"),
        "type": message.get("type", "text"),
        "body": message.get("body", ""),
        "media_url": message.get("media_url"),
        "template_name": message.get("template_name"),
        "template_language": message.get("template_language", "en"),
        "template_components": message.get("template_components", []),
    }


def build_slack_payload(message: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "channel": message.get("channel", ""),
        "text": message.get("text", ""),
        "username": message.get("username"),
        "icon_emoji": message.get("icon_emoji"),
        "icon_url": message.get("icon_url"),
        "attachments": message.get("attachments", []),
        "blocks": message.get("blocks", []),
    }


def build_webhook_payload(message: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "url": message.get("url", ""),
        "method": str(message.get("method", "POST")).upper(),
        "headers": message.get("headers", {}),
        "body": message.get("body", {}),
        "auth": message.get("auth", {}),
        "timeout": message.get("timeout", 30),
    }


PAYLOAD_BUILDERS: dict[str, PayloadBuilder] = {
    "email": build_email_payload,
    "sms": build_sms_payload,
    "push": build_push_payload,
    "whatsapp": build_whatsapp_payload,
    "slack": build_slack_payload,
    "webhook": build_webhook_payload,
}

# Flags that mark a message as a dry run; carried through so the cache
# policy can see them.
PASSTHROUGH_FLAGS = ("validate_only", "render_only")


def build_payload(message_type: str, message: Mapping[str, Any]) -> dict[str, Any]:
    """Shape ``message`` for ``message_type``; unknown types pass through unchanged."""
    builder = PAYLOAD_BUILDERS.get(message_type)
    if builder is None:
        return dict(message)
    payload = builder(message)
    for flag in PASSTHROUGH_FLAGS:
        if message.get(flag):
            payload[flag] = True
    return payload
