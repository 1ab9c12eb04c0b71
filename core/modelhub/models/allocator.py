"""Collision-free model folder names."""

from pathlib import Path

from modelhub.config import MAX_FOLDER_SUFFIX
from modelhub.utils.logging import logger


def candidate_name(desired: str, count: int) -> str:
    return f"{desired}-{count}" if count else desired


def allocate_folder(root: Path, desired: str) -> Path:
    """
    Create a new, empty model folder named after ``desired``.

    Tries ``desired``, then ``desired-1``, ``desired-2`` and so on. Creating the
    folder is the existence check, so two concurrent imports of the same file
    can never end up sharing a folder.

    Args:
        root: Models root directory
        desired: Preferred folder name

    Returns:
        Path of the created folder
    """
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)

    for count in range(MAX_FOLDER_SUFFIX):
        folder = root / candidate_name(desired, count)
        try:
            folder.mkdir()
        except FileExistsError:
            continue
        logger.debug(f"Allocated model folder {folder.name}")
        return folder

    raise FileExistsError(f"No free folder name for {desired} under {root}")
