"""
Pure parsers for gphoto2 text output.

Each function takes raw tool output (or a single line) and returns a parsed
value, or None / an empty list when nothing matches. Extra lines, blank
output and tool chatter are ignored.

Formats handled:

--auto-detect::

    Model                          Port
    ----------------------------------------------------------
    Canon EOS 5D Mark III          usb:001,005

--list-folders::

    There are 2 folders in folder '/'.
     - store_00010001
     - store_00020001

--list-files::

    There are 2 files in folder '/store_00010001/DCIM/100CANON':
    #1     IMG_0001.JPG               rd  5213 KB image/jpeg 1760951988
    #2     IMG_0002.CR2               rd 24560 KB image/x-canon-cr2

--capture-tethered / --get-file::

    Saving file as session/IMG_0001_120000.jpg
"""
import re
from pathlib import PurePosixPath
from typing import Iterable, List, Optional

from camera.models import DeviceFile

PORT_PATTERN = re.compile(r"\b(?:usb|ptpip|serial|disk):", re.IGNORECASE)
FOLDER_LINE_PATTERN = re.compile(r"^\s*-\s+(\S.*?)\s*$")
FOLDER_HEADER_PATTERN = re.compile(r"in folder '([^']*)'")
FILE_LINE_PATTERN = re.compile(r"^\s*#(\d+)\s+(\S+)")
STORAGE_ROOT_PATTERN = re.compile(r"^store_[0-9a-f]{8}$", re.IGNORECASE)
DCIM_PATTERN = re.compile(r"dcim", re.IGNORECASE)
NUMBERED_FOLDER_PATTERN = re.compile(r"^(\d+)[A-Za-z0-9_]*$")
SAVED_FILE_PATTERN = re.compile(r"Saving file as\s+(.+?)\s*$")
NO_SPACE_PATTERN = re.compile(
    r"no space|store full|storage full|not enough space|card full",
    re.IGNORECASE,
)

JPEG_EXTENSIONS = (".jpg", ".jpeg")


def parse_auto_detect(text: str) -> bool:
    """True if the auto-detect table lists at least one camera port."""
    return bool(PORT_PATTERN.search(text or ""))


def parse_folder_list(text: str) -> List[str]:
    folders = []
    for line in (text or "").splitlines():
        match = FOLDER_LINE_PATTERN.match(line)
        if match:
            folders.append(match.group(1))
    return folders


def parse_file_list(text: str, folder: str = "/") -> List[DeviceFile]:
    """
    Parse ``--list-files`` output.

    The folder of each entry comes from the nearest preceding
    "in folder '...'" header, falling back to ``folder``.
    """
    files = []
    current = folder
    for line in (text or "").splitlines():
        header = FOLDER_HEADER_PATTERN.search(line)
        if header:
            current = header.group(1) or folder
            continue
        match = FILE_LINE_PATTERN.match(line)
        if match:
            files.append(
                DeviceFile(folder=current, index=int(match.group(1)), name=match.group(2))
            )
    return files


def find_storage_root(folders: Iterable[str]) -> Optional[str]:
    for name in folders:
        if STORAGE_ROOT_PATTERN.match(name):
            return name
    return None


def find_dcim(folders: Iterable[str]) -> Optional[str]:
    for name in folders:
        if DCIM_PATTERN.search(name):
            return name
    return None


def select_photo_folder(folders: Iterable[str]) -> Optional[str]:
    """Pick the numbered folder with the highest numeric prefix (newest)."""
    best = None
    best_number = -1
    for name in folders:
        match = NUMBERED_FOLDER_PATTERN.match(name)
        if not match:
            continue
        number = int(match.group(1))
        if number > best_number:
            best, best_number = name, number
    return best


def parse_saved_file(line: str) -> Optional[str]:
    """Return the path from a "Saving file as <path>" line."""
    match = SAVED_FILE_PATTERN.search(line or "")
    if not match:
        return None
    return match.group(1)


def filename_of(path: str) -> str:
    return PurePosixPath(path.replace("\\", "/")).name


def is_jpeg(name: str) -> bool:
    return name.lower().endswith(JPEG_EXTENSIONS)


def reports_no_space(text: str) -> bool:
    return bool(NO_SPACE_PATTERN.search(text or ""))
