import pytest

from enzyme.src.models.conversation import Cursor, SynthesisMessageMetadata
from enzyme.src.services.document import TextDocument
from enzyme.src.services.synthesis_container import create_synthesis_container


class TestTextDocument:
    def test_replace_range_inserts_and_replaces(self) -> None:
        document = TextDocument("one\ntwo\nthree")

        document.replace_range("X", Cursor(line=1, ch=1))
        assert document.get_value() == "one\ntXwo\nthree"

        document.replace_range("2", Cursor(line=1, ch=0), Cursor(line=1, ch=4))
        assert document.get_value() == "one\n2\nthree"

    def test_positions_past_the_end_are_clamped(self) -> None:
        document = TextDocument("ab\ncd")

        assert document.clip(Cursor(line=9, ch=9)) == Cursor(line=1, ch=2)
        assert document.get_range(Cursor(line=0, ch=1), Cursor(line=5, ch=0)) == "b\ncd"

    def test_offset_and_position_are_inverse(self) -> None:
        document = TextDocument("ab\ncd\n")

        assert document.offset_of(Cursor(line=1, ch=1)) == 4
        assert document.pos_at(4) == Cursor(line=1, ch=1)
        assert document.pos_at(6) == Cursor(line=2, ch=0)

    def test_set_line_outside_document_raises(self) -> None:
        document = TextDocument("only")

        document.set_line(0, "changed")
        assert document.get_value() == "changed"
        with pytest.raises(IndexError):
            document.set_line(3, "nope")


class TestSynthesisContainer:
    def test_create_inserts_callout_after_closing_fence(self) -> None:
        document = TextDocument("```enzyme\nq\n```\n")

        container = create_synthesis_container(document, 2)

        assert document.get_value() == "```enzyme\nq\n```\n\n> [!💭]+\n> "
        assert container.cursor == Cursor(line=5, ch=2)

    def test_create_handles_fence_on_last_line(self) -> None:
        document = TextDocument("```enzyme\nq\n```")

        container = create_synthesis_container(document, 2)

        assert document.get_value() == "```enzyme\nq\n```\n\n> [!💭]+\n> "
        assert container.cursor == Cursor(line=5, ch=2)

    def test_create_keeps_following_text_below_callout(self) -> None:
        document = TextDocument("```enzyme\nq\n```\nafter")

        container = create_synthesis_container(document, 2)
        container.append_text("hi")

        assert document.get_value() == "```enzyme\nq\n```\n\n> [!💭]+\n> hiafter"

    def test_append_text_quotes_new_lines_and_moves_cursor(self) -> None:
        document = TextDocument("```enzyme\nq\n```\n")
        container = create_synthesis_container(document, 2)

        container.append_text("Hello")
        assert container.cursor == Cursor(line=5, ch=7)

        container.append_text(" there\nWorld")
        assert document.lines[5:] == ["> Hello there", "> World"]
        assert container.cursor == Cursor(line=6, ch=7)
        assert document.last_scrolled == (Cursor(line=6, ch=7), Cursor(line=6, ch=7))

    def test_wait_placeholder_is_removed(self) -> None:
        document = TextDocument("```enzyme\nq\n```\n")
        container = create_synthesis_container(document, 2)
        before = document.get_value()

        remove = container.wait_placeholder("Synthesizing...")
        assert document.get_value() == before + "Synthesizing..."
        remove()

        assert document.get_value() == before

    def test_reset_text_discards_appended_output(self) -> None:
        document = TextDocument("```enzyme\nq\n```\n")
        container = create_synthesis_container(document, 2)
        before = document.get_value()

        container.append_text("draft\nmore")
        container.reset_text()

        assert document.get_value() == before
        assert container.cursor == Cursor(line=5, ch=2)

    def test_full_reply_round_trips_through_reconstruction(self) -> None:
        document = TextDocument("```enzyme\nq\n```\n")
        container = create_synthesis_container(document, 2)

        container.render_metadata([SynthesisMessageMetadata(id="x")])
        container.append_text("Hello\nWorld")
        container.finalize()

        assert document.get_value() == (
            "```enzyme\nq\n```\n\n> [!💭]+\n> \n"
            '> <div style="display:none">[{"id":"x","assistantMessageType":"synthesis"}]</div>\n'
            "> Hello\n> World\n\n```enzyme\n\n```\n"
        )
        assert container.cursor == Cursor(line=11, ch=0)
        assert document.get_cursor() == Cursor(line=11, ch=0)

        turns = container.get_messages_to_here()
        assert [turn.role for turn in turns] == ["user", "assistant"]
        assert turns[1].content == "Hello\nWorld"
        assert turns[1].metadata == [SynthesisMessageMetadata(id="x")]
