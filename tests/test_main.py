"""Tests for the command-line entry point.

The meeting source is provided through a throwaway module registered in
sys.modules so RELAY_SOURCE can point at it.
"""

from __future__ import annotations

import json
import sys
import types
from datetime import datetime, timedelta, timezone

import pytest

from src.relay.config import ConfigError, Settings
from src.relay.main import build_parser, load_source, main, run
from src.relay.meetings.schemas import Panel, SourceDocument, TranscriptSegment
from src.relay.meetings.source import MeetingSource


class StaticSource(MeetingSource):
    def __init__(self, documents: list[SourceDocument]) -> None:
        self.documents = documents

    async def get_documents(self, limit: int) -> list[SourceDocument]:
        return self.documents[:limit]

    async def get_document(self, meeting_id: str) -> SourceDocument | None:
        return next((d for d in self.documents if d.meeting_id == meeting_id), None)

    async def get_document_panels(self, meeting_id: str) -> list[Panel]:
        return []

    async def get_transcript(self, meeting_id: str) -> list[TranscriptSegment] | None:
        return [TranscriptSegment(speaker="Wile", text="Hello")]


def _recent_document(meeting_id: str) -> SourceDocument:
    created = datetime.now(timezone.utc) - timedelta(hours=1)
    return SourceDocument(id=meeting_id, title="CLI sync", created_at=created.isoformat())


@pytest.fixture
def source_module(monkeypatch):
    module = types.ModuleType("relay_test_source")
    module.make_source = lambda: StaticSource([_recent_document("doc-1")])
    module.not_a_source = lambda: object()
    monkeypatch.setitem(sys.modules, "relay_test_source", module)
    return module


def _settings(**overrides) -> Settings:
    values = {
        "RELAY_SOURCE": "relay_test_source:make_source",
        "WEBHOOK_SECRET": "",
        "WEBHOOK_ENVIRONMENT": "",
        "SLACK_WEBHOOK_URL": "",
        "DISCORD_WEBHOOK_URL": "",
        "AIRTABLE_API_KEY": "",
        "SMTP_PASSWORD": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _write_config(tmp_path, **extra) -> str:
    config = {
        "environments": {"test": {"url": "https://hooks.example.com/test"}},
        "outputs": {
            "webhook": {"enabled": False},
            "json_file": {"enabled": True, "file_path": str(tmp_path / "out.json")},
        },
        "monitoring": {"state_file_path": str(tmp_path / "state" / "state.json")},
    }
    config.update(extra)
    path = tmp_path / "relay-config.json"
    path.write_text(json.dumps(config))
    return str(path)


class TestLoadSource:
    def test_loads_factory(self, source_module):
        assert isinstance(load_source("relay_test_source:make_source"), StaticSource)

    @pytest.mark.parametrize(
        "import_path",
        ["", "no_colon", "relay_test_source:missing", "does.not.exist:factory"],
    )
    def test_bad_paths(self, source_module, import_path):
        with pytest.raises(ConfigError) as exc_info:
            load_source(import_path)
        assert exc_info.value.errors[0][0] == "RELAY_SOURCE"

    def test_factory_must_return_source(self, source_module):
        with pytest.raises(ConfigError):
            load_source("relay_test_source:not_a_source")


class TestParser:
    def test_short_flags(self):
        args = build_parser().parse_args(["-c", "cfg.json", "-e", "production", "-m", "doc-1"])
        assert (args.config, args.env, args.meeting) == ("cfg.json", "production", "doc-1")

    def test_init_config_writes_file(self, tmp_path, capsys):
        path = tmp_path / "new-config.json"
        with pytest.raises(SystemExit) as exc_info:
            main(["--init-config", str(path)])

        assert exc_info.value.code == 0
        assert "environments" in json.loads(path.read_text())
        assert str(path) in capsys.readouterr().out


class TestRun:
    @pytest.mark.asyncio
    async def test_batch_run_delivers_and_saves_state(self, tmp_path, source_module):
        args = build_parser().parse_args(["--config", _write_config(tmp_path)])

        code = await run(args, _settings())

        assert code == 0
        assert json.loads((tmp_path / "out.json").read_text())[0]["meetingId"] == "doc-1"
        state = json.loads((tmp_path / "state" / "state.json").read_text())
        assert state["processedMeetings"][0]["id"] == "doc-1"
        assert state["processedMeetings"][0]["success"] is True

    @pytest.mark.asyncio
    async def test_transcript_flag_comes_from_webhook_settings(self, tmp_path, source_module):
        default_args = build_parser().parse_args(["--config", _write_config(tmp_path)])
        await run(default_args, _settings())
        [plain] = json.loads((tmp_path / "out.json").read_text())

        (tmp_path / "state" / "state.json").unlink()
        (tmp_path / "out.json").unlink()
        config_path = _write_config(tmp_path, webhook={"include_transcript": True})
        await run(build_parser().parse_args(["--config", config_path]), _settings())
        [with_transcript] = json.loads((tmp_path / "out.json").read_text())

        assert "enhancedTranscript" not in plain
        assert with_transcript["enhancedTranscript"]["segments"][0]["text"] == "Hello"

    @pytest.mark.asyncio
    async def test_single_meeting_mode(self, tmp_path, source_module):
        args = build_parser().parse_args(["--config", _write_config(tmp_path), "-m", "doc-1"])

        code = await run(args, _settings())

        assert code == 0
        state = json.loads((tmp_path / "state" / "state.json").read_text())
        assert [m["id"] for m in state["processedMeetings"]] == ["doc-1"]

    @pytest.mark.asyncio
    async def test_config_error_exits_1(self, tmp_path, source_module, capsys):
        args = build_parser().parse_args(["--config", str(tmp_path / "missing.json")])

        assert await run(args, _settings()) == 1
        assert "Configuration file not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_unknown_env_flag_exits_1(self, tmp_path, source_module):
        args = build_parser().parse_args(["--config", _write_config(tmp_path), "-e", "nope"])

        assert await run(args, _settings()) == 1
