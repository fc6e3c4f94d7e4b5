"""
CLI tests.

Run with:
    python -m pytest tests/test_cli.py -v
"""

import pytest

from cli.generate import format_event, run_generation
from core.config import get_config
from core.credentials import CredentialStore
from services.video_generation import ProgressEvent, ProgressKind, SubmissionError


class TestFormatEvent:
    def test_panel_style_line(self):
        event = ProgressEvent(stage="polling", kind=ProgressKind.RUNNING, message="Job job123: running")

        # stdout is not a tty under pytest, so no color codes
        assert format_event(event) == "> Job job123: running"


class TestRunGeneration:
    @pytest.mark.asyncio
    async def test_image_to_video_without_start_frame(self, capsys):
        result = await run_generation(prompt="a cat flying", mode="i2v", api_key="r8_test_token")

        assert result is None
        assert "No valid start frame" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_missing_api_key(self, tmp_path, monkeypatch, capsys):
        monkeypatch.delenv("REPLICATE_API_TOKEN", raising=False)
        settings_path = str(tmp_path / "settings.json")
        monkeypatch.setattr("cli.generate.CredentialStore", lambda: CredentialStore(settings_path))

        result = await run_generation(prompt="waves")

        assert result is None
        assert "set-key" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_poll_overrides_do_not_leak_into_shared_config(self, monkeypatch):
        seen = []

        class RecordingOrchestrator:
            def __init__(self, config=None):
                seen.append(config)

            async def __aenter__(self):
                return self

            async def __aexit__(self, exc_type, exc_val, exc_tb):
                pass

            async def generate(self, *args, **kwargs):
                raise SubmissionError("quota exceeded", status_code=402)

        monkeypatch.setattr("cli.generate.GenerationOrchestrator", RecordingOrchestrator)
        shared = get_config().polling
        interval_before, timeout_before = shared.interval_seconds, shared.timeout_seconds

        result = await run_generation(
            prompt="waves", poll_interval=1.5, timeout=42, api_key="r8_test_token"
        )

        assert result is None
        assert seen[0].polling.interval_seconds == 1.5
        assert seen[0].polling.timeout_seconds == 42
        assert get_config().polling is shared
        assert shared.interval_seconds == interval_before
        assert shared.timeout_seconds == timeout_before
