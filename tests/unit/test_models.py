"""
Unit tests for the shared data structures.
"""

from datetime import datetime, timezone

from src.models import (
    EventKind,
    GeneratedReply,
    InboundEvent,
    LogEntry,
    LogStatus,
    Persona,
    Template,
    parse_timestamp,
)


class TestInboundEvent:

    def test_event_id_combines_kind_and_media_id(self):
        event = InboundEvent(kind=EventKind.MENTION, external_post_id="178")
        assert event.event_id == "mention_178"
        assert InboundEvent(kind=EventKind.REPLY, external_post_id="9").event_id == "reply_9"

    def test_each_event_gets_its_own_delivery_id(self):
        a = InboundEvent(kind=EventKind.MENTION, external_post_id="1")
        b = InboundEvent(kind=EventKind.MENTION, external_post_id="1")
        assert a.event_id == b.event_id
        assert a.delivery_id != b.delivery_id

    def test_field_mapping(self):
        assert EventKind.from_field("mentions") is EventKind.MENTION
        assert EventKind.from_field("replies") is EventKind.REPLY
        assert EventKind.from_field("quotes") is None


class TestRows:

    def test_persona_from_row_parses_json_text_posts(self):
        persona = Persona.from_row({
            "id": "p1",
            "user_id": "u1",
            "name": "luna",
            "display_name": "Luna",
            "style": "polite",
            "recent_posts": '["おはよう", "", "こんにちは"]',
            "active": 1,
        })
        assert persona.recent_posts == ["おはよう", "こんにちは"]
        assert persona.active is True

    def test_persona_display_name_falls_back_to_name(self):
        persona = Persona.from_row({"id": "p1", "user_id": "u1", "name": "sol"})
        assert persona.display_name == "sol"
        assert persona.recent_posts == []

    def test_template_from_row(self):
        template = Template.from_row({
            "id": "t1", "user_id": "u1", "template_id": "price",
            "persona": "luna", "intent": "inform", "body": "料金は{price}です",
            "min_len": 20, "max_len": None,
        })
        assert template.template_id == "price"
        assert template.max_len is None

    def test_generated_reply_metadata(self):
        reply = GeneratedReply(reply="hi", model="gemini-test", persona_name="luna")
        assert reply.metadata == {
            "model": "gemini-test",
            "persona_used": "luna",
            "template_used": None,
        }


class TestLogEntry:

    def test_to_row_serialises_status_and_timestamp(self):
        created = datetime(2025, 11, 26, 14, 30, tzinfo=timezone.utc)
        entry = LogEntry(
            user_id="u1",
            event_id="mention_1",
            status=LogStatus.SUCCESS,
            reply="ありがとう",
            metadata={"delivery_id": "d1"},
            created_at=created,
        )
        row = entry.to_row()
        assert row["status"] == "success"
        assert row["created_at"] == "2025-11-26T14:30:00+00:00"
        assert row["metadata"] == {"delivery_id": "d1"}
        assert row["id"]

    def test_entries_get_distinct_ids(self):
        a = LogEntry(user_id="u", event_id="e", status=LogStatus.RECEIVED)
        b = LogEntry(user_id="u", event_id="e", status=LogStatus.RECEIVED)
        assert a.id != b.id


class TestParseTimestamp:

    def test_zulu_suffix(self):
        assert parse_timestamp("2025-01-01T00:00:00Z") == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_naive_values_are_utc(self):
        assert parse_timestamp("2025-01-01T09:00:00").tzinfo == timezone.utc
