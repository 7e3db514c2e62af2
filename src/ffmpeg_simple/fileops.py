"""
File operations for ffmpeg-simple.

- Recoverable delete through the system trash (send2trash)
- Swapping a freshly produced file over an existing path
- Replacing an input in place with rollback on failure
"""

import os
import shutil
from pathlib import Path
from typing import Callable, List, Union

from send2trash import send2trash

from ffmpeg_simple.errors import ReplaceError

PathLike = Union[str, Path]
BACKUP_SUFFIX = ".bkp"


def trash(path: PathLike) -> None:
    """Move a path to the system trash."""
    send2trash(str(path))


def remove(path: PathLike, recoverable: bool = True) -> None:
    """Delete a path, through the trash unless ``recoverable`` is False."""
    if recoverable:
        trash(path)
    else:
        p = Path(path)
        if p.is_dir():
            shutil.rmtree(p)
        else:
            p.unlink()


def ensure_parent(path: PathLike) -> Path:
    """Create the parent directory of ``path`` if missing."""
    parent = Path(path).expanduser().parent
    parent.mkdir(parents=True, exist_ok=True)
    return parent


def file_size(path: PathLike) -> int:
    """Get file size in bytes, 0 on error."""
    try:
        return Path(path).stat().st_size
    except OSError:
        return 0


def swap_into(new_file: PathLike, target: PathLike, delete: Callable[[PathLike], None] = trash) -> None:
    """
    Put ``new_file`` at ``target``.

    The old ``target`` is removed with ``delete`` (the trash by default)
    before the rename.
    """
    if os.path.lexists(target):
        delete(target)
    os.replace(str(new_file), str(target))


def replace_in_place(original: PathLike, replacement: PathLike) -> None:
    """
    Move ``replacement`` over ``original`` without ever losing ``original``.

    The original is first renamed to a backup. The replacement is then
    renamed over the original path, falling back to a copy-based move
    (across filesystems). If both fail the backup is restored and a
    ReplaceError carrying every failure is raised. The backup is deleted
    once the replacement is in place.

    Raises:
        ReplaceError: If the replacement couldn't be moved.
    """
    original = str(original)
    replacement = str(replacement)
    backup = original + BACKUP_SUFFIX
    errors: List[BaseException] = []

    try:
        os.rename(original, backup)
    except OSError as e:
        raise ReplaceError(f"Couldn't back up {original}: {e}", [e]) from e

    try:
        os.rename(replacement, original)
    except OSError as e:
        errors.append(e)
        try:
            shutil.move(replacement, original)
        except (OSError, shutil.Error) as e2:
            errors.append(e2)
            try:
                os.rename(backup, original)
            except OSError as e3:
                errors.append(e3)
                raise ReplaceError(
                    f"Couldn't replace {original} nor restore it; original kept at {backup}",
                    errors,
                    backup=backup,
                ) from e3
            raise ReplaceError(f"Couldn't replace {original} (restored)", errors) from e2

    os.remove(backup)
