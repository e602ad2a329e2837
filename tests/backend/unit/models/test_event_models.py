"""Tests for chat transport event models."""

from __future__ import annotations

import pytest

from pydantic import ValidationError

from models.event_models import ChatEvent, ChatMessage, IndicatorEvent


class TestChatEvent:
    def test_parses_message_new_payload(self) -> None:
        event = ChatEvent.model_validate_json(
            '{"type": "message.new", "cid": "messaging:general", "watcher_count": 3,'
            ' "message": {"id": "m1", "text": "Hi", "user": {"id": "jane", "role": "user"}}}'
        )

        assert event.type == "message.new"
        assert event.message is not None
        assert event.message.user is not None
        assert event.message.user.id == "jane"
        assert event.message.ai_generated is False
        # Unmodelled fields are preserved
        assert event.model_extra == {"watcher_count": 3}

    def test_type_is_required(self) -> None:
        with pytest.raises(ValidationError):
            ChatEvent.model_validate({"cid": "messaging:general"})

    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            ({"cid": "messaging:general"}, "messaging:general"),
            ({"message": {"id": "m1", "cid": "team:eng"}}, "team:eng"),
            ({"channel_type": "messaging", "channel_id": "random"}, "messaging:random"),
            ({"channel_id": "random"}, None),
        ],
    )
    def test_channel_cid(self, payload: dict, expected: str | None) -> None:
        assert ChatEvent(type="message.new", **payload).channel_cid == expected

    def test_target_message_id_prefers_explicit_id(self) -> None:
        event = ChatEvent(type="ai_indicator.stop", message_id="m2", message={"id": "m1"})
        assert event.target_message_id == "m2"

    def test_target_message_id_falls_back_to_message(self) -> None:
        assert ChatEvent(type="ai_indicator.stop", message={"id": "m1"}).target_message_id == "m1"
        assert ChatEvent(type="ai_indicator.stop").target_message_id is None


class TestChatMessage:
    def test_writing_task(self) -> None:
        assert ChatMessage(id="m1", custom={"writingTask": "Essay"}).writing_task == "Essay"

    @pytest.mark.parametrize("custom", [None, {}, {"writingTask": ""}])
    def test_writing_task_absent(self, custom: dict | None) -> None:
        assert ChatMessage(id="m1", custom=custom).writing_task is None


def test_indicator_payload_omits_empty_state() -> None:
    clear = IndicatorEvent(type="ai_indicator.clear", cid="messaging:general", message_id="m1")
    update = IndicatorEvent(
        type="ai_indicator.update", cid="messaging:general", message_id="m1", ai_state="AI_STATE_THINKING"
    )

    assert clear.to_payload() == {"type": "ai_indicator.clear", "cid": "messaging:general", "message_id": "m1"}
    assert update.to_payload()["ai_state"] == "AI_STATE_THINKING"
