"""Tests for the command-line interface.

WHY: The CLI is the main way a learner drives the trainer. Its exit
codes and its stdout/stderr split are what scripts depend on.

HOW: main() is called with an explicit argv and --data pointing into
tmp_path. Each test starts by importing the sample document so the
store content is known. capsys captures output.

RULES:
- Nothing here plays audio or calls the Soniox API
- Data goes to stdout, status and errors to stderr
"""

from __future__ import annotations

import io
import json
from unittest.mock import MagicMock

import pytest
import uvicorn

from recite import cli
from recite.cli import build_parser, main
from recite.server import app as app_module
from recite.speech import edge as edge_module


@pytest.fixture
def data_path(tmp_path, sample_document, capsys):
    """A data file preloaded with the sample document (doc-1, doc-2)."""
    doc = tmp_path / "sample.json"
    doc.write_text(json.dumps(sample_document, ensure_ascii=False), encoding="utf-8")
    data = tmp_path / "data.json"
    assert main(["--data", str(data), "import", str(doc)]) == 0
    capsys.readouterr()
    return str(data)


def _run(data_path, *argv):
    return main(["--data", data_path] + list(argv))


class TestParser:

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_text_and_audio_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["check", "--text", "x", "--audio", "y.wav"])

    def test_set_requires_assignment(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["settings", "--set", "groupSize"])

    def test_set_is_repeatable(self):
        args = build_parser().parse_args(["settings", "--set", "groupSize=4", "--set", "rate= 1.5"])
        assert args.set == [("groupSize", "4"), ("rate", "1.5")]


class TestRecords:

    def test_import_then_list(self, data_path, capsys):
        assert _run(data_path, "list") == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines == ["  doc-1  第一题", "* doc-2  第二题"]

    def test_add(self, data_path, capsys):
        assert _run(data_path, "add", "新问题", "--answer", "新答案。") == 0
        new_id = capsys.readouterr().out.strip()
        _run(data_path, "list")
        assert capsys.readouterr().out.splitlines()[0] == "  {}  新问题".format(new_id)

    def test_add_from_file(self, data_path, tmp_path, capsys):
        answer = tmp_path / "answer.txt"
        answer.write_text("甲。乙。\n", encoding="utf-8")
        assert _run(data_path, "add", "Q", "--answer-file", str(answer)) == 0
        new_id = capsys.readouterr().out.strip()
        _run(data_path, "export")
        qas = json.loads(capsys.readouterr().out)["data"]["qas"]
        assert qas[0]["id"] == new_id
        assert qas[0]["answerText"] == "甲。乙。"

    def test_add_requires_answer(self, data_path, capsys):
        assert _run(data_path, "add", "Q") == 1
        assert "Error:" in capsys.readouterr().err

    def test_select(self, data_path, capsys):
        assert _run(data_path, "select", "doc-1") == 0
        capsys.readouterr()
        _run(data_path, "list")
        assert capsys.readouterr().out.splitlines()[0] == "* doc-1  第一题"

    def test_select_unknown(self, data_path, capsys):
        assert _run(data_path, "select", "nope") == 1
        assert "nope" in capsys.readouterr().err

    def test_delete(self, data_path, capsys):
        assert _run(data_path, "delete", "doc-1") == 0
        capsys.readouterr()
        _run(data_path, "list")
        assert capsys.readouterr().out.splitlines() == ["* doc-2  第二题"]

    def test_delete_unknown(self, data_path):
        assert _run(data_path, "delete", "nope") == 1


class TestSettings:

    def test_show(self, data_path, capsys):
        assert _run(data_path, "settings") == 0
        data = json.loads(capsys.readouterr().out)
        assert data["groupSize"] == 2
        assert data["repeatPerGroup"] == 3

    def test_set_values(self, data_path, capsys):
        assert _run(
            data_path, "settings",
            "--set", "groupSize=99",
            "--set", "ttsVoice=zh-CN-YunxiNeural",
            "--set", "autoPlayNextQa=false",
        ) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["groupSize"] == 10
        assert data["ttsVoice"] == "zh-CN-YunxiNeural"
        assert data["autoPlayNextQa"] is False


class TestCheck:

    def test_check_text(self, data_path, capsys):
        assert _run(data_path, "check", "--text", "春眠不觉晓") == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "+ 1.00  春眠不觉晓"
        assert lines[1] == "- 0.00  处处闻啼鸟"
        assert lines[2].startswith("Hit 1/2 segments (50%)")

    def test_check_reads_stdin(self, data_path, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("甲一\n"))
        assert _run(data_path, "check", "--record", "doc-1") == 0
        assert "Hit 1/5 segments (20%)" in capsys.readouterr().out

    def test_check_unknown_record(self, data_path, capsys):
        assert _run(data_path, "check", "--record", "nope", "--text", "x") == 1

    def test_check_missing_recording(self, data_path, tmp_path, capsys, monkeypatch):
        monkeypatch.setenv("SONIOX_API_KEY", "test-key")
        assert _run(data_path, "check", "--audio", str(tmp_path / "absent.wav")) == 1
        err = capsys.readouterr().err
        assert "Error:" in err
        assert "absent.wav" in err

    def test_check_rejects_unsupported_audio(self, data_path, tmp_path, capsys):
        notes = tmp_path / "notes.txt"
        notes.write_text("x", encoding="utf-8")
        assert _run(data_path, "check", "--audio", str(notes)) == 1
        assert "Unsupported recording type" in capsys.readouterr().err


class TestImportExport:

    def test_export_to_file(self, data_path, tmp_path, capsys):
        out = tmp_path / "backup.json"
        assert _run(data_path, "export", "--output", str(out)) == 0
        assert "Exported 2 record(s)" in capsys.readouterr().err
        doc = json.loads(out.read_text(encoding="utf-8"))
        assert [q["id"] for q in doc["data"]["qas"]] == ["doc-1", "doc-2"]
        assert doc["data"]["progress"]["currentRecordId"] == "doc-2"

    def test_import_invalid(self, data_path, tmp_path, capsys):
        bad = tmp_path / "bad.json"
        bad.write_text('{"data": {"qas": 3}}', encoding="utf-8")
        assert _run(data_path, "import", str(bad)) == 1
        assert "Error:" in capsys.readouterr().err
        _run(data_path, "list")
        assert len(capsys.readouterr().out.splitlines()) == 2

    def test_import_missing_file(self, data_path, tmp_path, capsys):
        assert _run(data_path, "import", str(tmp_path / "missing.json")) == 1


class TestPlay:

    def test_play_without_player(self, data_path, capsys, monkeypatch):
        monkeypatch.setattr(edge_module.shutil, "which", lambda name: None)
        assert _run(data_path, "play") == 1
        assert "No speech backend is available" in capsys.readouterr().err

    def test_play_with_tts_disabled(self, data_path, capsys):
        _run(data_path, "settings", "--set", "ttsEnabled=false")
        capsys.readouterr()
        assert _run(data_path, "play") == 1
        assert "disabled" in capsys.readouterr().err

    def test_unknown_key_prints_help(self, capsys):
        cli._apply_key(object(), "x")
        assert "p=pause" in capsys.readouterr().err

    @pytest.mark.parametrize("key, method", [
        ("p", "pause"),
        ("r", "resume"),
        ("q", "stop"),
        ("stop", "stop"),
    ])
    def test_keys_map_to_commands(self, key, method):
        scheduler = MagicMock()
        cli._apply_key(scheduler, key)
        getattr(scheduler, method).assert_called_once_with()

    def test_next_key_restarts_playback(self):
        scheduler = MagicMock()
        cli._apply_key(scheduler, "n")
        scheduler.goto_next.assert_called_once_with()
        scheduler.start.assert_called_once_with()

    def test_next_key_at_last_record_does_not_start(self):
        scheduler = MagicMock()
        scheduler.goto_next.return_value = None
        cli._apply_key(scheduler, "n")
        scheduler.start.assert_not_called()


class TestServe:

    def test_serve_uses_data_path(self, data_path, monkeypatch):
        launched = {}

        def fake_run(app, **kwargs):
            launched["app"] = app
            launched.update(kwargs)

        monkeypatch.setattr(app_module, "scheduler", app_module.scheduler)
        monkeypatch.setattr(uvicorn, "run", fake_run)

        assert _run(data_path, "serve", "--port", "9001") == 0
        assert launched["app"] is app_module.app
        assert launched["port"] == 9001
        assert str(app_module.scheduler.store.path) == data_path
        assert [r.id for r in app_module.scheduler.store.list()] == ["doc-1", "doc-2"]
