"""
Tests for ProgressState and its file stores.
"""
import json

import pytest

from pongbot.core.errors import StateIOError
from pongbot.state.state import STATE_VERSION, ProgressState, StateStore
from pongbot.state.state_atomic import AtomicStateStore


class TestProgressState:
    """In-memory state transitions."""

    def test_fresh_state_is_uninitialized(self):
        state = ProgressState()
        assert not state.initialized
        assert state.last_processed_height == 0
        assert state.seen_event_ids == set()

    def test_mark_seen_is_idempotent(self):
        state = ProgressState(start_height=1)
        assert state.mark_seen("0xa")
        assert not state.mark_seen("0xa")
        assert state.processed_txs == ["0xa"]
        assert state.has_seen("0xa")

    def test_advance_is_monotonic(self):
        state = ProgressState(start_height=1, last_processed_height=10)
        assert state.advance_to(12)
        assert not state.advance_to(11)
        assert state.last_processed_height == 12

    def test_rejection_counts_attempts_and_clears_on_seen(self):
        state = ProgressState(start_height=1)
        assert state.record_rejection("0xa", 5).attempts == 1
        assert state.record_rejection("0xa", 5).attempts == 2
        state.mark_seen("0xa")
        assert state.rejected == {}

    def test_seen_ids_property_is_a_copy(self):
        state = ProgressState(processed_txs=["0xa"])
        state.seen_event_ids.add("0xb")
        assert not state.has_seen("0xb")

    def test_from_dict_accepts_legacy_keys(self):
        """Files written with block-named keys still load."""
        state = ProgressState.from_dict({
            "startBlock": 7907600,
            "lastProcessedBlock": 7907650,
            "processedTxs": ["0xa", "0xb", "0xa"],
        })
        assert state.start_height == 7907600
        assert state.last_processed_height == 7907650
        assert state.processed_txs == ["0xa", "0xb"]
        assert state.rejected == {}


class TestStateStore:
    """Atomic JSON persistence."""

    def test_missing_file_loads_fresh_state(self, tmp_path):
        store = StateStore(str(tmp_path / "s" / "state.json"))
        assert store.load() == ProgressState()

    def test_save_writes_expected_document(self, tmp_path):
        path = tmp_path / "state.json"
        store = StateStore(str(path))
        state = ProgressState(start_height=100, last_processed_height=120, processed_txs=["0x1"])
        state.record_rejection("0x2", 110)
        store.save(state)

        data = json.loads(path.read_text())
        assert data == {
            "startHeight": 100,
            "lastProcessedHeight": 120,
            "processedTxs": ["0x1"],
            "rejectedTxs": {"0x2": {"height": 110, "attempts": 1}},
            "stateVersion": STATE_VERSION,
        }
        assert not store.tmp.exists()
        assert store.load() == state

    def test_corrupt_file_is_fatal(self, tmp_path):
        """A damaged file is never silently reset."""
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(StateIOError):
            StateStore(str(path)).load()

    def test_non_object_root_is_fatal(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2]")
        with pytest.raises(StateIOError):
            StateStore(str(path)).load()

    def test_interrupted_save_keeps_previous_state(self, tmp_path):
        """A leftover tmp file from a crash does not affect the committed state."""
        path = tmp_path / "state.json"
        store = StateStore(str(path))
        store.save(ProgressState(start_height=1, last_processed_height=5))
        store.tmp.write_text('{"startHeight": 1, "lastProc')

        assert store.load().last_processed_height == 5

    def test_unwritable_target_raises_state_io_error(self, tmp_path):
        path = tmp_path / "state.json"
        store = StateStore(str(path))
        path.mkdir()
        with pytest.raises(StateIOError):
            store.save(ProgressState(start_height=1))

    def test_unusable_state_dir_raises_state_io_error(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        with pytest.raises(StateIOError) as ei:
            AtomicStateStore(str(blocker / "state.json"))
        assert ei.value.exit_code == 3


class TestAtomicStateStore:

    @pytest.mark.asyncio
    async def test_roundtrip(self, tmp_path):
        store = AtomicStateStore(str(tmp_path / "state.json"))
        state = ProgressState(start_height=3, last_processed_height=4, processed_txs=["0xa"])
        await store.save(state)
        assert await store.load() == state

    @pytest.mark.asyncio
    async def test_save_snapshots_state(self, tmp_path):
        """Mutations after save() returns are not written."""
        store = AtomicStateStore(str(tmp_path / "state.json"))
        state = ProgressState(start_height=3, last_processed_height=4)
        await store.save(state)
        state.mark_seen("0xa")

        assert (await store.load()).processed_txs == []
