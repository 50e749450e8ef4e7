"""
Tests for Session and conversation items.

Tests cover:
- Item log operations
- Forking: prefix copy, lineage, independence from the parent
- Completed turn reconstruction
- Summaries, previews and tags
- Serialization
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from aipex.conversation.items import (
    FunctionCallItem,
    FunctionResultItem,
    MessageItem,
    assistant_message,
    item_from_dict,
    item_to_dict,
    system_message,
    user_message,
)
from aipex.conversation.preview import default_preview, extract_preview
from aipex.conversation.session import CompletedTurn, Session


def conversation() -> Session:
    session = Session("root")
    session.add_items(
        [
            system_message("You control a browser."),
            user_message("Open settings"),
            assistant_message(""),
            FunctionCallItem(call_id="c1", name="click", arguments={"x": 1, "y": 2}),
            FunctionResultItem(call_id="c1", name="click", output="Clicked"),
            assistant_message("Settings are open."),
            user_message("Now close them"),
            assistant_message("Closed."),
        ]
    )
    return session


class TestItems:
    """Discriminated conversation items."""

    def test_type_discriminator_dispatch(self):
        call = FunctionCallItem(call_id="c1", name="click", arguments={"x": 1})

        restored = item_from_dict(item_to_dict(call))

        assert isinstance(restored, FunctionCallItem)
        assert restored == call

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            item_from_dict({"type": "reasoning", "content": "hmm"})

    def test_items_are_immutable(self):
        item = user_message("hi")

        with pytest.raises(ValidationError):
            item.content = "changed"


class TestSessionLog:
    """Append-oriented item log."""

    def test_new_session_has_id_and_empty_log(self):
        session = Session()

        assert session.id
        assert session.item_count == 0
        assert session.get_items() == []

    def test_add_and_limit(self):
        session = conversation()

        assert len(session) == 8
        assert session.get_items(limit=2) == [user_message("Now close them"), assistant_message("Closed.")]
        assert session.get_items(limit=0) == []

    def test_get_items_returns_copy(self):
        session = conversation()

        items = session.get_items()
        items.clear()

        assert session.item_count == 8

    def test_pop_item(self):
        session = Session()
        session.add_item(user_message("hi"))

        assert session.pop_item() == user_message("hi")
        assert session.pop_item() is None

    def test_clear_updates_activity(self):
        session = conversation()
        before = session.stats.last_active_at

        session.clear()

        assert session.item_count == 0
        assert session.stats.last_active_at >= before

    def test_metadata_is_copied_out(self):
        session = Session(metadata={"tags": ["a"]})

        session.metadata["tags"] = ["mutated"]
        session.set_metadata("owner", "me")

        assert session.get_metadata("tags") == ["a"]
        assert session.get_metadata("owner") == "me"
        assert session.get_metadata("missing", 42) == 42


class TestFork:
    """Forking sessions at an item index."""

    def test_fork_copies_prefix_for_every_index(self):
        session = conversation()
        original = session.get_items()

        for index in range(len(original) + 1):
            forked = session.fork(index)

            assert forked.get_items() == original[:index]
            assert forked.parent_session_id == "root"
            assert forked.fork_at_item_index == index
            assert forked.id != session.id
            assert session.get_items() == original

    def test_fork_defaults_to_whole_log(self):
        session = conversation()

        forked = session.fork()

        assert forked.item_count == session.item_count
        assert forked.fork_at_item_index == session.item_count

    @pytest.mark.parametrize("index", [-1, 9, 100])
    def test_invalid_index(self, index):
        with pytest.raises(ValueError, match="Invalid fork index"):
            conversation().fork(index)

    def test_fork_is_independent(self):
        session = conversation()
        session.set_metadata("tags", ["work"])
        forked = session.fork(2)

        forked.add_item(assistant_message("Different answer"))
        forked.get_metadata("tags").append("branch")

        assert session.item_count == 8
        assert session.get_metadata("tags") == ["work"]

    def test_fork_counts_user_turns_in_prefix(self):
        forked = conversation().fork(7)

        assert forked.stats.total_turns == 2

    def test_fork_info(self):
        session = conversation()
        forked = session.fork(3)

        assert not session.get_fork_info().is_fork
        info = forked.get_fork_info()
        assert info.is_fork
        assert info.parent_session_id == "root"
        assert info.fork_at_item_index == 3


class TestCompletedTurns:
    """Turns rebuilt from the item log."""

    def test_turns_from_log(self):
        turns = conversation().get_completed_turns()

        assert len(turns) == 2
        first, second = turns
        assert first.user_message.content == "Open settings"
        assert first.assistant_message.content == ""
        assert [call.name for call in first.function_calls] == ["click"]
        assert first.function_results[0].output == "Clicked"
        assert second.assistant_message.content == "Closed."
        assert first.id == "root:0"

    def test_add_turn_appends_items_and_counts(self):
        session = Session()
        turn = CompletedTurn(
            user_message=user_message("hi"),
            assistant_message=assistant_message("hello"),
        )

        session.add_turn(turn)

        assert session.get_items() == [user_message("hi"), assistant_message("hello")]
        assert session.stats.total_turns == 1


class TestSummary:
    """Listing summaries."""

    def test_preview_uses_first_user_message(self):
        summary = conversation().get_summary()

        assert summary.preview == "Open settings"
        assert summary.item_count == 8

    def test_long_preview_is_truncated(self):
        session = Session()
        session.add_item(user_message("  " + "x" * 150 + "  "))

        preview = session.get_summary().preview

        assert preview == "x" * 100 + "..."

    def test_preview_without_user_message(self):
        created = datetime(2026, 3, 5, 14, 7, tzinfo=UTC)
        session = Session()
        session.stats.created_at = created

        assert session.get_summary().preview == "Conversation Mar 05, 14:07"
        assert default_preview(created) == "Conversation Mar 05, 14:07"

    def test_extract_preview_short_text(self):
        assert extract_preview("  hello  ") == "hello"
        assert extract_preview("") == ""

    def test_tags(self):
        session = Session(metadata={"tags": ["work", "urgent"]})

        assert session.get_summary().tags == ("work", "urgent")
        assert Session(metadata={"tags": "oops"}).get_summary().tags == ()

    def test_summary_to_dict(self):
        data = conversation().fork(2).get_summary().to_dict()

        assert data["parent_session_id"] == "root"
        assert data["fork_at_item_index"] == 2
        assert isinstance(data["created_at"], str)


class TestSerialization:
    """to_dict / from_dict."""

    def test_round_trip_keeps_everything(self):
        session = conversation()
        session.set_metadata("tags", ["a"])
        session.record_turn()
        forked = session.fork(5)

        restored = Session.from_dict(forked.to_dict())

        assert restored.id == forked.id
        assert restored.get_items() == forked.get_items()
        assert restored.metadata == forked.metadata
        assert restored.parent_session_id == "root"
        assert restored.fork_at_item_index == 5
        assert restored.stats.created_at == forked.stats.created_at
        assert restored.stats.total_turns == forked.stats.total_turns

    def test_items_keep_their_types(self):
        restored = Session.from_dict(conversation().to_dict())

        types = [type(item) for item in restored.get_items()]
        assert types[3] is FunctionCallItem
        assert types[4] is FunctionResultItem
        assert all(isinstance(item, MessageItem) for item in restored.get_items()[:3])

    def test_missing_id_rejected(self):
        with pytest.raises(ValueError, match="missing required fields"):
            Session.from_dict({"items": []})

    def test_malformed_item_rejected(self):
        with pytest.raises(ValidationError):
            Session.from_dict({"id": "x", "items": [{"type": "message", "role": "robot", "content": "hi"}]})
