import pytest

from camera.discovery import FolderDiscovery
from tests.fakes.fake_gateway import FakeGateway, PHOTO_FOLDER


@pytest.mark.asyncio
async def test_discover_picks_highest_numbered_folder():
    discovery = FolderDiscovery(FakeGateway())

    assert await discovery.discover() == PHOTO_FOLDER
    assert PHOTO_FOLDER.endswith("/103CANON")
    assert discovery.cached_path == PHOTO_FOLDER


@pytest.mark.asyncio
async def test_discover_is_cached_until_invalidated():
    gateway = FakeGateway()
    discovery = FolderDiscovery(gateway)

    await discovery.discover()
    await discovery.discover()
    assert len(gateway.folder_calls) == 3

    discovery.invalidate()
    assert discovery.cached_path is None

    await discovery.discover()
    assert len(gateway.folder_calls) == 6


@pytest.mark.asyncio
async def test_missing_storage_root_is_not_found():
    gateway = FakeGateway()
    gateway.folders["/"] = ["MISC"]

    assert await FolderDiscovery(gateway).discover() is None


@pytest.mark.asyncio
async def test_missing_dcim_is_not_found():
    gateway = FakeGateway()
    gateway.folders["/store_00010001"] = ["MISC"]

    assert await FolderDiscovery(gateway).discover() is None


@pytest.mark.asyncio
async def test_no_numbered_folder_is_not_found():
    gateway = FakeGateway()
    gateway.folders["/store_00010001/DCIM"] = ["CANONMSC"]

    discovery = FolderDiscovery(gateway)
    assert await discovery.discover() is None
    assert discovery.cached_path is None


@pytest.mark.asyncio
async def test_gateway_error_is_not_found():
    gateway = FakeGateway()
    del gateway.folders["/store_00010001"]

    assert await FolderDiscovery(gateway).discover() is None
