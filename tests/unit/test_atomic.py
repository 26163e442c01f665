"""Unit tests for atomic result file writing."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from helpers.fakes import make_result
from loadshaper.results import LoadTestResult
from loadshaper.utils import atomic_write_json, atomic_write_text


@pytest.mark.unit
class TestAtomicWrite:
    def test_write_text_creates_parents(self, tmp_path):
        target = tmp_path / "nested" / "dir" / "out.txt"
        atomic_write_text(target, "hello")
        assert target.read_text(encoding="utf-8") == "hello"
        assert list(target.parent.iterdir()) == [target]

    def test_overwrite_replaces_content(self, tmp_path):
        target = tmp_path / "out.txt"
        target.write_text("old", encoding="utf-8")
        atomic_write_text(target, "new")
        assert target.read_text(encoding="utf-8") == "new"

    def test_failed_replace_leaves_no_temp_file(self, tmp_path):
        target = tmp_path / "out.txt"
        target.write_text("original", encoding="utf-8")

        with patch("loadshaper.utils.atomic.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                atomic_write_text(target, "partial")

        assert target.read_text(encoding="utf-8") == "original"
        assert [p.name for p in tmp_path.iterdir()] == ["out.txt"]

    def test_write_json_dict(self, tmp_path):
        target = tmp_path / "data.json"
        atomic_write_json(target, {"score": 95, "items": [1, 2]})
        assert json.loads(target.read_text(encoding="utf-8")) == {"score": 95, "items": [1, 2]}

    def test_write_json_rejects_unserialisable(self, tmp_path):
        with pytest.raises(ValueError, match="Cannot serialize"):
            atomic_write_json(tmp_path / "bad.json", {"when": object()})
        assert not (tmp_path / "bad.json").exists()

    def test_write_model_round_trips(self, tmp_path):
        result = make_result(sla_violations=["P95 latency 1200.0ms exceeds target 1000ms"])
        target = tmp_path / "result.json"
        atomic_write_json(target, result)

        loaded = LoadTestResult.model_validate_json(Path(target).read_text(encoding="utf-8"))
        assert loaded == result
