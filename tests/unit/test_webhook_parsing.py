"""
Unit tests for webhook payload parsing and verification helpers.
"""

import hashlib
import hmac
import json

import pytest

from src.errors import ValidationError
from src.models import EventKind
from src.webhook import parse_payload, verify_signature, verify_token


def make_payload(*changes, obj="threads"):
    return {"object": obj, "entry": [{"id": "acct", "changes": list(changes)}]}


def mention(media_id="178", text="料金を教えてください", username="hanako"):
    return {
        "field": "mentions",
        "value": {
            "media_id": media_id,
            "text": text,
            "timestamp": "2025-11-26T14:30:00+0000",
            "username": username,
        },
    }


class TestParsePayload:

    def test_mentions_and_replies_become_events(self):
        reply = {"field": "replies", "value": {"media_id": "200", "text": "thanks"}}
        events = parse_payload(make_payload(mention(), reply))

        assert [e.kind for e in events] == [EventKind.MENTION, EventKind.REPLY]
        first = events[0]
        assert first.external_post_id == "178"
        assert first.raw_text == "料金を教えてください"
        assert first.username == "hanako"
        assert first.timestamp == "2025-11-26T14:30:00+0000"

    def test_events_share_the_delivery_id(self):
        events = parse_payload(make_payload(mention("1"), mention("2")), delivery_id="d-1")
        assert {e.delivery_id for e in events} == {"d-1"}

    def test_singular_object_name_is_accepted(self):
        assert len(parse_payload(make_payload(mention(), obj="thread"))) == 1

    def test_unknown_object_is_ignored(self):
        assert parse_payload(make_payload(mention(), obj="page")) == []

    def test_unrecognised_fields_and_missing_media_id_are_skipped(self):
        events = parse_payload(make_payload(
            {"field": "quotes", "value": {"media_id": "1"}},
            {"field": "mentions", "value": {"text": "no id"}},
            {"field": "mentions", "value": "not a dict"},
            "garbage",
            mention("5"),
        ))
        assert [e.external_post_id for e in events] == ["5"]

    def test_numeric_media_id_is_stringified(self):
        events = parse_payload(make_payload({"field": "mentions", "value": {"media_id": 42}}))
        assert events[0].event_id == "mention_42"

    def test_empty_entry_list(self):
        assert parse_payload({"object": "threads", "entry": []}) == []

    @pytest.mark.parametrize("payload", [
        [],
        "text",
        {"object": "threads", "entry": {"changes": []}},
        {"object": "threads", "entry": [{"changes": "nope"}]},
        {"object": "threads", "entry": ["nope"]},
    ])
    def test_malformed_shapes_raise(self, payload):
        with pytest.raises(ValidationError):
            parse_payload(payload)


class TestVerification:

    def sign(self, secret: str, body: bytes) -> str:
        return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

    def test_signature_matches_any_secret(self):
        body = json.dumps(make_payload(mention())).encode()
        signature = self.sign("config-secret", body)
        assert verify_signature(body, signature, ["app-secret", "config-secret"])

    def test_signature_mismatch(self):
        body = b'{"object": "threads"}'
        assert not verify_signature(body, self.sign("other", body), ["app-secret"])
        assert not verify_signature(body + b" ", self.sign("app-secret", body), ["app-secret"])

    def test_missing_signature_or_secrets(self):
        body = b"{}"
        assert not verify_signature(body, None, ["app-secret"])
        assert not verify_signature(body, self.sign("", body), ["", ""])

    def test_verify_token(self):
        assert verify_token("verify-me", ["", "other", "verify-me"])
        assert not verify_token("verify-me", ["", "other"])
        assert not verify_token("", [""])
