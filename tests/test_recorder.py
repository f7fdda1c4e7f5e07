"""End-to-end tests for the recording controller."""

import asyncio
import json

import pytest

from conftest import SAMPLE_NOTE_RESPONSE, FakeLineSource, FakeTextService, Script, wait_until
from livenotes.exceptions import PersistenceFailure, RecordingStateError, SourceUnavailable
from livenotes.models import Line
from livenotes.recorder import EMPTY_CONVERSATION_SUMMARY, RecordingController, conversation_summary
from livenotes.storage import InMemoryStore


class FailOnceStore(InMemoryStore):
    def __init__(self):
        super().__init__()
        self.note_failures = 1
        self.conversation_calls = 0

    async def create_conversation(self, record):
        self.conversation_calls += 1
        return await super().create_conversation(record)

    async def create_note(self, record):
        if self.note_failures:
            self.note_failures -= 1
            raise PersistenceFailure("create_note", ConnectionError("down"))
        return await super().create_note(record)


@pytest.fixture
async def controller_parts(app_config, note_router):
    source = FakeLineSource()
    service = FakeTextService(default=["Hi", " there"], router=note_router)
    store = InMemoryStore()
    controller = RecordingController(source, service, store, config=app_config)
    yield controller, source, service, store
    await controller.close()


class TestRecordingController:
    async def test_full_recording(self, controller_parts) -> None:
        controller, source, service, store = controller_parts
        await controller.start()
        assert source.started == 1
        assert source.resets == 1

        for i in range(10):
            controller.ingest(Line(text=f"line {i}"))

        result = await controller.stop()

        blocks = result.blocks.blocks()
        assert [len(b.lines) for b in blocks] == [4, 4, 2]
        assert result.blocks.annotation_for(1).text == "Hi there"
        assert result.blocks.annotation_for(2).text == "Hi there"
        assert result.blocks.annotation_for(3) is None
        assert result.note.topic == "X"
        assert source.stopped == 1

        note_calls = [c for c in service.calls if "note-taking" in c[0]]
        assert len(note_calls) == 2
        assert note_calls[-1][1] == " ".join(f"line {i}" for i in range(10))

        saved = await store.get_by_id(result.conversation_id)
        assert saved.summary == "line 0 line 1 line 2 line 3"
        assert saved.user_id == "user-1"
        records = saved.decoded_blocks()
        assert records[0]["type"] == "trans"
        assert records[1] == {"type": "ai", "forId": 1, "text": "Hi there"}

        note = await store.get_note(result.note_id)
        assert note.raw_transcription == " ".join(f"line {i}" for i in range(10))
        assert json.loads(note.definitions) == [{"term": "t1", "def": "d1"}]

        assert [s.id for s in await store.list_by_user("user-1")] == [result.conversation_id]

    async def test_poll_loop_feeds_lines(self, controller_parts) -> None:
        controller, source, _, _ = controller_parts
        source.push("a", "b", "a", "c", "d")
        await controller.start()

        await wait_until(lambda: controller.session.line_count == 4)

        assert [l.text for l in controller.session.lines] == ["a", "b", "c", "d"]
        await wait_until(lambda: controller.session.blocks.annotation_for(1) is not None
                         and controller.session.blocks.annotation_for(1).text == "Hi there")

    async def test_poll_failure_is_ignored(self, controller_parts) -> None:
        controller, source, _, _ = controller_parts
        await controller.start()
        source.poll_error = SourceUnavailable("poll", ConnectionError("down"))

        assert await controller.poll_once() is None
        assert controller.recording
        assert controller.session.line_count == 0

    async def test_lines_after_stop_are_not_ingested(self, controller_parts) -> None:
        controller, _, _, _ = controller_parts
        await controller.start()
        controller.ingest(Line(text="a"))
        await controller.stop()

        controller.ingest(Line(text="b"))

        assert controller.session.line_count == 1

    async def test_start_twice_is_rejected(self, controller_parts) -> None:
        controller, _, _, _ = controller_parts
        await controller.start()
        with pytest.raises(RecordingStateError):
            await controller.start()

    async def test_stop_without_recording_is_rejected(self, controller_parts) -> None:
        controller, _, _, _ = controller_parts
        with pytest.raises(RecordingStateError):
            await controller.stop()

    async def test_source_start_failure_leaves_state_alone(self, app_config) -> None:
        controller = RecordingController(
            FakeLineSource(fail_start=True), FakeTextService(), InMemoryStore(), config=app_config
        )
        with pytest.raises(SourceUnavailable):
            await controller.start()
        assert not controller.recording
        assert controller.session.epoch == 0
        await controller.close()

    async def test_empty_recording_saves_nothing(self, controller_parts) -> None:
        controller, _, service, store = controller_parts
        await controller.start()

        result = await controller.stop()

        assert result.conversation_id is None
        assert result.note_id is None
        assert service.calls == []
        assert await store.list_by_user("user-1") == []

    async def test_new_recording_resets_session(self, controller_parts) -> None:
        controller, _, _, _ = controller_parts
        first_epoch = await controller.start()
        for i in range(5):
            controller.ingest(Line(text=f"old {i}"))
        await controller.stop()

        second_epoch = await controller.start()

        assert second_epoch == first_epoch + 1
        assert controller.session.line_count == 0
        assert controller.session.blocks.entries == ()
        assert controller.session.note is None
        controller.ingest(Line(text="new"))
        assert controller.session.blocks.blocks()[0].id == 1

    async def test_save_retry_does_not_duplicate(self, app_config, note_router) -> None:
        store = FailOnceStore()
        controller = RecordingController(
            FakeLineSource(), FakeTextService(router=note_router), store, config=app_config
        )
        await controller.start()
        for i in range(8):
            controller.ingest(Line(text=f"line {i}"))

        with pytest.raises(PersistenceFailure):
            await controller.stop()
        assert controller.session.note is not None

        result = await controller.save()

        assert result.note_id is not None
        assert store.conversation_calls == 1
        await controller.close()

    async def test_start_during_stop_waits_for_save(self, app_config) -> None:
        gate = asyncio.Event()

        def route(context, content):
            if "note-taking" in context:
                return Script([SAMPLE_NOTE_RESPONSE], pause_before=0, gate=gate)
            return None

        store = InMemoryStore()
        service = FakeTextService(router=route)
        controller = RecordingController(FakeLineSource(), service, store, config=app_config)
        await controller.start()
        for i in range(3):
            controller.ingest(Line(text=f"line {i}"))

        stopping = asyncio.create_task(controller.stop())
        await wait_until(lambda: any("note-taking" in c[0] for c in service.calls))
        starting = asyncio.create_task(controller.start())
        await asyncio.sleep(0.01)
        assert not starting.done()

        gate.set()
        result = await stopping
        second_epoch = await starting

        assert result.note.topic == "X"
        assert [len(b.lines) for b in result.blocks.blocks()] == [3]
        saved = await store.list_by_user("user-1")
        assert [s.id for s in saved] == [result.conversation_id]
        assert (await store.get_note(result.note_id)).raw_transcription == "line 0 line 1 line 2"

        assert second_epoch == 2
        assert controller.recording
        assert controller.session.line_count == 0
        await controller.close()

    async def test_snapshot(self, controller_parts) -> None:
        controller, _, _, _ = controller_parts
        await controller.start()
        controller.ingest(Line(text="a"))

        snapshot = controller.snapshot()

        assert snapshot.recording
        assert snapshot.line_count == 1
        assert snapshot.blocks.blocks()[0].text == "a"
        assert snapshot.note is None


class TestConversationSummary:
    def test_empty(self, session) -> None:
        assert conversation_summary(session.blocks) == EMPTY_CONVERSATION_SUMMARY

    def test_truncated(self, session) -> None:
        from livenotes.pipeline.blocks import BlockBuilder

        builder = BlockBuilder(session, capacity=4)
        builder.ingest(Line(text="x" * 150))

        summary = conversation_summary(session.blocks, max_chars=100)

        assert summary == "x" * 100 + "..."
