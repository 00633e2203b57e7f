"""Tests for the JSON file blob store."""

import json
from pathlib import Path

import pytest

from aeg_robot.store import JSONFileStore


class TestJSONFileStore:
    """Tests for JSONFileStore."""

    @pytest.mark.asyncio
    async def test_missing_file_returns_none(self, tmp_path: Path) -> None:
        """Test that reading from a store with no file finds nothing."""
        store = JSONFileStore(tmp_path / "persist.json")
        assert await store.async_get("key") is None

    @pytest.mark.asyncio
    async def test_values_are_persisted(self, tmp_path: Path) -> None:
        """Test that values survive being reloaded by a new store."""
        path = tmp_path / "nested" / "persist.json"
        blob = {"accessToken": "a", "refreshToken": "r", "expiresAt": "2024-01-01T00:00:00+00:00"}

        await JSONFileStore(path).async_set("first", blob)
        await JSONFileStore(path).async_set("second", [1, 2])

        store = JSONFileStore(path)
        assert await store.async_get("first") == blob
        assert await store.async_get("second") == [1, 2]
        assert set(json.loads(path.read_text())) == {"first", "second"}

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, tmp_path: Path) -> None:
        """Test that a file that is not a JSON object is reported."""
        path = tmp_path / "persist.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(ValueError, match="Unexpected contents"):
            await JSONFileStore(path).async_get("key")
