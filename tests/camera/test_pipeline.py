import asyncio
from datetime import datetime

import pytest

from camera.gateway_base import GatewayError
from camera.models import CapturedPhoto, DownloadFailure
from camera.pipeline import DownloadPipeline
from tests.fakes.fake_gateway import FakeGateway


def _pipeline(gateway, tmp_path, **kwargs):
    kwargs.setdefault("ready_interval", 0.005)
    kwargs.setdefault("clock", lambda: datetime(2025, 3, 8, 12, 0, 0))
    return DownloadPipeline(gateway, tmp_path, **kwargs)


def test_local_filename_embeds_capture_time(tmp_path):
    pipeline = _pipeline(FakeGateway(), tmp_path)
    assert pipeline.local_filename("IMG_0001.JPG") == "IMG_0001_20250308_120000_000000.jpg"


@pytest.mark.asyncio
async def test_download_returns_captured_photo(tmp_path):
    gateway = FakeGateway()
    file = gateway.add_file("IMG_0001.JPG")

    result = await _pipeline(gateway, tmp_path).download(file)

    assert isinstance(result, CapturedPhoto)
    assert result.device_filename == "IMG_0001.JPG"
    assert result.local_filename == "IMG_0001_20250308_120000_000000.jpg"
    assert result.local_path == tmp_path / result.local_filename
    assert result.local_path.exists()


@pytest.mark.asyncio
async def test_download_failure_is_returned_not_raised(tmp_path):
    gateway = FakeGateway()
    file = gateway.add_file("IMG_0001.JPG")
    gateway.failing["IMG_0001.JPG"] = "*** Error: PTP I/O error ***"

    result = await _pipeline(gateway, tmp_path).download(file)

    assert isinstance(result, DownloadFailure)
    assert result.identifier == file.identifier
    assert "PTP I/O error" in result.reason
    assert result.no_space is False


@pytest.mark.asyncio
async def test_download_flags_no_space(tmp_path):
    gateway = FakeGateway()
    file = gateway.add_file("IMG_0001.JPG")
    gateway.failing["IMG_0001.JPG"] = "*** Error: No space left on device ***"

    result = await _pipeline(gateway, tmp_path).download(file)

    assert isinstance(result, DownloadFailure)
    assert result.no_space is True


@pytest.mark.asyncio
async def test_download_gateway_error_becomes_failure(tmp_path):
    gateway = FakeGateway()
    file = gateway.add_file("IMG_0001.JPG")

    async def boom(_file, _destination):
        raise GatewayError("get-file timed out")

    gateway.get_file = boom

    result = await _pipeline(gateway, tmp_path).download(file)

    assert isinstance(result, DownloadFailure)
    assert "timed out" in result.reason


@pytest.mark.asyncio
async def test_collect_waits_for_file_to_appear(tmp_path):
    pipeline = _pipeline(FakeGateway(), tmp_path, ready_attempts=10, ready_interval=0.01)

    async def write_later():
        await asyncio.sleep(0.03)
        (tmp_path / "photo_120000.jpg").write_bytes(b"\xff\xd8")

    writer = asyncio.create_task(write_later())
    result = await pipeline.collect("session/photo_120000.jpg")
    await writer

    assert isinstance(result, CapturedPhoto)
    assert result.local_filename == "photo_120000.jpg"
    assert result.local_path == tmp_path / "photo_120000.jpg"


@pytest.mark.asyncio
async def test_collect_gives_up_after_bounded_attempts(tmp_path):
    pipeline = _pipeline(FakeGateway(), tmp_path, ready_attempts=3, ready_interval=0.001)

    result = await pipeline.collect("session/missing.jpg")

    assert isinstance(result, DownloadFailure)
    assert result.identifier == "missing.jpg"
