"""
Artifact Fetcher Tests

Covers:
1. Streaming a result to a uniquely named file
2. Collision handling (never overwrite)
3. Size verification and cleanup of partial files
4. Coarse-grained progress notifications
5. Cancellation mid-transfer

Run with:
    python -m pytest tests/test_artifact_fetcher.py -v
"""

import os
from pathlib import Path

import httpx
import pytest

from services.video_generation import (
    ArtifactFetcher,
    CancelToken,
    DownloadError,
    GenerationCanceled,
    ProgressKind,
)
from services.video_generation.fetcher import materialize

VIDEO_URL = "https://cdn.example.com/outputs/y.mp4"
ONE_MB = 1024 * 1024


def visible_files(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir() if not p.name.startswith("."))


def all_files(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir())


class TestDownload:
    """Successful downloads."""

    @pytest.mark.asyncio
    async def test_downloads_full_file(self, config, fake_service, tmp_path):
        content = os.urandom(ONE_MB)
        fake_service.add_file(VIDEO_URL, content)
        fetcher = ArtifactFetcher(config, http_client=fake_service.http_client())
        events = []

        artifact = await fetcher.download(VIDEO_URL, str(tmp_path), events.append, job_id="job123")

        path = Path(artifact.local_path)
        assert path.parent == tmp_path
        assert path.name.startswith("job123_")
        assert path.suffix == ".mp4"
        assert path.read_bytes() == content
        assert artifact.size_bytes == ONE_MB
        assert all_files(tmp_path) == [path.name]

        kinds = [e.kind for e in events]
        assert kinds[0] == ProgressKind.DOWNLOAD_STARTED
        assert kinds[-1] == ProgressKind.DOWNLOAD_COMPLETE
        assert set(kinds[1:-1]) <= {ProgressKind.DOWNLOAD_PROGRESS}

    @pytest.mark.asyncio
    async def test_progress_is_coarse(self, config, fake_service, tmp_path):
        config.storage.chunk_size = 1024
        fake_service.add_file(VIDEO_URL, b"v" * ONE_MB)
        fetcher = ArtifactFetcher(config, http_client=fake_service.http_client())
        events = []

        await fetcher.download(VIDEO_URL, str(tmp_path), events.append, job_id="job123")

        progress = [e for e in events if e.kind == ProgressKind.DOWNLOAD_PROGRESS]
        assert [e.percent for e in progress] == [25.0, 50.0, 75.0]
        assert len(events) == 5

    @pytest.mark.asyncio
    async def test_creates_destination_dir(self, config, fake_service, tmp_path):
        fake_service.add_file(VIDEO_URL, b"video")
        fetcher = ArtifactFetcher(config, http_client=fake_service.http_client())
        destination = tmp_path / "nested" / "renders"

        artifact = await fetcher.download(VIDEO_URL, str(destination), job_id="job123")

        assert Path(artifact.local_path).parent == destination

    @pytest.mark.asyncio
    async def test_extension_follows_url(self, config, fake_service, tmp_path):
        url = "https://cdn.example.com/outputs/clip.webm?token=abc"
        fake_service.add_file(url, b"webm")
        fetcher = ArtifactFetcher(config, http_client=fake_service.http_client())

        artifact = await fetcher.download(url, str(tmp_path), job_id="job123")

        assert artifact.local_path.endswith(".webm")

    @pytest.mark.asyncio
    async def test_declared_length_checked_against_bytes_written(self, config, fake_service, tmp_path):
        content = b"v" * 4096
        fake_service.add_file(VIDEO_URL, content, headers={"Content-Length": "4096"})
        fetcher = ArtifactFetcher(config, http_client=fake_service.http_client())

        artifact = await fetcher.download(VIDEO_URL, str(tmp_path), job_id="job123")

        assert artifact.size_bytes == 4096
        assert Path(artifact.local_path).read_bytes() == content

    @pytest.mark.asyncio
    async def test_same_job_twice_does_not_overwrite(self, config, fake_service, tmp_path):
        fake_service.add_file(VIDEO_URL, b"first")
        fetcher = ArtifactFetcher(config, http_client=fake_service.http_client())

        first = await fetcher.download(VIDEO_URL, str(tmp_path), job_id="job123")
        fake_service.add_file(VIDEO_URL, b"second")
        second = await fetcher.download(VIDEO_URL, str(tmp_path), job_id="job123")

        assert first.local_path != second.local_path
        assert Path(first.local_path).read_bytes() == b"first"
        assert Path(second.local_path).read_bytes() == b"second"


class TestMaterialize:
    """Exclusive placement of finished files."""

    def test_collision_gets_suffix(self, tmp_path):
        (tmp_path / "job123_x.mp4").write_bytes(b"existing")
        (tmp_path / "job123_x_1.mp4").write_bytes(b"existing too")
        tmp_file = tmp_path / ".job123_x.part"
        tmp_file.write_bytes(b"new")

        final = materialize(tmp_file, tmp_path, "job123_x", ".mp4")

        assert final.name == "job123_x_2.mp4"
        assert final.read_bytes() == b"new"
        assert (tmp_path / "job123_x.mp4").read_bytes() == b"existing"
        assert not tmp_file.exists()


class TestDownloadFailures:
    """Failures never leave files behind."""

    @pytest.mark.asyncio
    async def test_size_mismatch_removes_partial_file(self, config, fake_service, tmp_path):
        fake_service.add_file(VIDEO_URL, b"x" * 1000, headers={"Content-Length": str(ONE_MB)})
        fetcher = ArtifactFetcher(config, http_client=fake_service.http_client())

        with pytest.raises(DownloadError, match="Size mismatch"):
            await fetcher.download(VIDEO_URL, str(tmp_path), job_id="job123")

        assert all_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_http_error(self, config, fake_service, tmp_path):
        fetcher = ArtifactFetcher(config, http_client=fake_service.http_client())

        with pytest.raises(DownloadError, match="404"):
            await fetcher.download("https://cdn.example.com/missing.mp4", str(tmp_path), job_id="job123")

        assert all_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_transport_error(self, config, tmp_path):
        def refuse(request):
            raise httpx.ConnectError("connection refused")

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        fetcher = ArtifactFetcher(config, http_client=http_client)

        with pytest.raises(DownloadError, match="ConnectError"):
            await fetcher.download(VIDEO_URL, str(tmp_path), job_id="job123")

        assert all_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_cancel_mid_transfer(self, config, fake_service, tmp_path):
        config.storage.chunk_size = 1024
        fake_service.add_file(VIDEO_URL, b"v" * ONE_MB)
        fetcher = ArtifactFetcher(config, http_client=fake_service.http_client())
        token = CancelToken()

        def on_progress(event):
            if event.kind == ProgressKind.DOWNLOAD_PROGRESS:
                token.cancel()

        with pytest.raises(GenerationCanceled):
            await fetcher.download(
                VIDEO_URL, str(tmp_path), on_progress, job_id="job123", cancel_token=token
            )

        assert all_files(tmp_path) == []
        assert visible_files(tmp_path) == []
