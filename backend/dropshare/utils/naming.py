import re
from typing import Collection

_ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*\x00]')


def is_filename_valid(filename: str) -> bool:
    """
    Checks if a filename contains illegal characters for Windows, Linux, and macOS.
    """
    if not filename or filename in (".", ".."):
        return False
    return not _ILLEGAL_CHARS.search(filename)


def dedupe_name(file_name: str, taken: Collection[str]) -> str:
    """
    Generates a unique name by appending (n) if a conflict exists.
    Example: file.txt -> file (1).txt -> file (2).txt
    """
    if file_name not in taken:
        return file_name

    name_without_ext = file_name
    ext = ""
    if "." in file_name and not file_name.startswith("."):
        name_without_ext, ext = file_name.rsplit(".", 1)
        ext = "." + ext

    counter = 1
    while True:
        new_name = f"{name_without_ext} ({counter}){ext}"
        if new_name not in taken:
            return new_name
        counter += 1
