import logging
from typing import Optional

from camera.gateway_base import DeviceGateway, GatewayError
from camera.parsers import find_dcim, find_storage_root, select_photo_folder

logger = logging.getLogger(__name__)


class FolderDiscovery:
    """
    Locates the folder new photos land in: /<storage root>/DCIM/<newest numbered folder>.

    The result is cached until ``invalidate()``; ``discover()`` returns None
    when any level is missing, which callers treat as "not yet".
    """

    def __init__(self, gateway: DeviceGateway):
        self._gateway = gateway
        self._cached: Optional[str] = None

    @property
    def cached_path(self) -> Optional[str]:
        return self._cached

    def invalidate(self) -> None:
        if self._cached is not None:
            logger.debug("Dropping cached photo folder %s", self._cached)
        self._cached = None

    async def discover(self) -> Optional[str]:
        if self._cached is not None:
            return self._cached

        try:
            root = find_storage_root(await self._gateway.list_folders("/"))
            if root is None:
                logger.info("No storage root found on camera")
                return None

            root_path = f"/{root}"
            dcim = find_dcim(await self._gateway.list_folders(root_path))
            if dcim is None:
                logger.info("No DCIM folder under %s", root_path)
                return None

            dcim_path = f"{root_path}/{dcim}"
            folder = select_photo_folder(await self._gateway.list_folders(dcim_path))
            if folder is None:
                logger.info("No numbered photo folder under %s", dcim_path)
                return None
        except GatewayError as e:
            logger.info("Folder discovery failed: %s", e)
            return None

        self._cached = f"{dcim_path}/{folder}"
        logger.info("Photo folder: %s", self._cached)
        return self._cached
