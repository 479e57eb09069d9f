"""
Tests for CounterStore.

Covers:
- Missing or empty state loads as zero
- The on-disk format is one decimal line
- Malformed and out-of-range contents are rejected on load
- Failed saves raise PersistenceSaveError and leave no temporary files
"""

import os

import pytest

from exitonidle.errors import PersistenceLoadError, PersistenceSaveError
from exitonidle.persistence import MAX_COUNTER, CounterStore


class TestCounterStoreHappyPath:
    """Loading and saving well-formed state."""

    def test_missing_file_loads_zero(self, counter_store: CounterStore) -> None:
        """No state file means the counter starts at zero."""
        assert counter_store.load() == 0

    def test_empty_file_loads_zero(
        self,
        counter_store: CounterStore,
        state_path: str,
    ) -> None:
        """An empty state file also means zero."""
        with open(state_path, "w"):
            pass

        assert counter_store.load() == 0

    def test_save_writes_decimal_line(
        self,
        counter_store: CounterStore,
        state_path: str,
    ) -> None:
        """The file holds the value followed by a newline."""
        counter_store.save(42)

        with open(state_path) as state_file:
            assert state_file.read() == "42\n"

        assert counter_store.load() == 42

    def test_load_tolerates_surrounding_whitespace(
        self,
        counter_store: CounterStore,
        state_path: str,
    ) -> None:
        """Leading and trailing whitespace is ignored."""
        with open(state_path, "w") as state_file:
            state_file.write("  7 \n")

        assert counter_store.load() == 7

    def test_save_replaces_previous_value(
        self,
        counter_store: CounterStore,
        state_path: str,
    ) -> None:
        """Each save fully replaces the last one."""
        counter_store.save(1000)
        counter_store.save(3)

        with open(state_path) as state_file:
            assert state_file.read() == "3\n"

    def test_save_creates_parent_directory(self, tmp_path) -> None:
        """Missing parent directories are created."""
        store = CounterStore(str(tmp_path / "var" / "lib" / "counter"))

        store.save(5)

        assert store.load() == 5

    @pytest.mark.asyncio
    async def test_save_async(self, counter_store: CounterStore) -> None:
        """The async variant writes the same file."""
        await counter_store.save_async(9)

        assert counter_store.load() == 9


class TestCounterStoreNegativePath:
    """Unreadable or unwritable state."""

    def test_rejects_non_decimal_contents(
        self,
        counter_store: CounterStore,
        state_path: str,
    ) -> None:
        """Garbage in the state file fails the load."""
        with open(state_path, "w") as state_file:
            state_file.write("forty-two\n")

        with pytest.raises(PersistenceLoadError):
            counter_store.load()

    def test_rejects_negative_value(
        self,
        counter_store: CounterStore,
        state_path: str,
    ) -> None:
        """A signed value is not an unsigned counter."""
        with open(state_path, "w") as state_file:
            state_file.write("-1\n")

        with pytest.raises(PersistenceLoadError):
            counter_store.load()

    def test_rejects_value_beyond_32_bits(
        self,
        counter_store: CounterStore,
        state_path: str,
    ) -> None:
        """Values past 2**32 - 1 are out of range."""
        with open(state_path, "w") as state_file:
            state_file.write(f"{MAX_COUNTER + 1}\n")

        with pytest.raises(PersistenceLoadError) as exc_info:
            counter_store.load()

        assert exc_info.value.context["value"] == MAX_COUNTER + 1
        assert exc_info.value.fatal is True

    def test_unreadable_path_fails_load(self, tmp_path) -> None:
        """A directory where the file should be is a load error."""
        store = CounterStore(str(tmp_path))

        with pytest.raises(PersistenceLoadError):
            store.load()

    def test_save_failure_is_non_fatal_error(self, tmp_path) -> None:
        """Saving onto a directory raises a non-fatal save error."""
        target = tmp_path / "counter"
        target.mkdir()

        store = CounterStore(str(target))

        with pytest.raises(PersistenceSaveError) as exc_info:
            store.save(3)

        assert exc_info.value.fatal is False
        assert [
            name for name in os.listdir(tmp_path) if name.startswith(".counter-")
        ] == []


class TestCounterStoreEdgeCases:
    """Boundary values."""

    def test_max_counter_round_trips(
        self,
        counter_store: CounterStore,
        state_path: str,
    ) -> None:
        """2**32 - 1 is stored and loaded intact."""
        counter_store.save(MAX_COUNTER)

        with open(state_path) as state_file:
            assert state_file.read() == "4294967295\n"

        assert counter_store.load() == MAX_COUNTER

    def test_save_leaves_no_temporary_files(
        self,
        counter_store: CounterStore,
        tmp_path,
    ) -> None:
        """Only the state file remains after a successful save."""
        counter_store.save(11)

        assert os.listdir(tmp_path) == ["counter"]
