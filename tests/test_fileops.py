"""
Tests for file operations.
"""

import os

import pytest


class TestRemove:
    """Tests for remove/trash."""

    def test_recoverable_goes_to_trash(self, temp_dir, monkeypatch):
        """recoverable=True uses send2trash."""
        from ffmpeg_simple import fileops

        trashed = []
        monkeypatch.setattr(fileops, "send2trash", trashed.append)
        target = temp_dir / "a.mp4"
        target.write_bytes(b"x")

        fileops.remove(target)

        assert trashed == [str(target)]

    def test_unrecoverable_unlinks(self, temp_dir, monkeypatch):
        """recoverable=False deletes for good."""
        from ffmpeg_simple import fileops

        monkeypatch.setattr(fileops, "send2trash", lambda p: pytest.fail("trash used"))
        target = temp_dir / "a.mp4"
        target.write_bytes(b"x")

        fileops.remove(target, recoverable=False)

        assert not target.exists()

    def test_file_size(self, temp_dir):
        """Size in bytes, 0 for missing files."""
        from ffmpeg_simple.fileops import file_size

        target = temp_dir / "a.bin"
        target.write_bytes(b"abc")

        assert file_size(target) == 3
        assert file_size(temp_dir / "missing") == 0

    def test_ensure_parent(self, temp_dir):
        """Missing parent directories are created."""
        from ffmpeg_simple.fileops import ensure_parent

        parent = ensure_parent(temp_dir / "x" / "y" / "out.mp4")

        assert parent.is_dir()


class TestSwapInto:
    """Tests for swap_into."""

    def test_replaces_existing_target(self, temp_dir):
        """The old target goes through delete, the new file takes its place."""
        from ffmpeg_simple.fileops import swap_into

        new = temp_dir / "new.mp4"
        target = temp_dir / "out.mp4"
        new.write_bytes(b"new")
        target.write_bytes(b"old")
        deleted = []

        def delete(path):
            deleted.append(str(path))
            os.remove(path)

        swap_into(new, target, delete=delete)

        assert deleted == [str(target)]
        assert target.read_bytes() == b"new"
        assert not new.exists()


class TestReplaceInPlace:
    """Tests for replace_in_place."""

    def test_success_removes_backup(self, temp_dir):
        """The replacement ends up at the original path, no backup left."""
        from ffmpeg_simple.fileops import replace_in_place

        original = temp_dir / "a.mp4"
        replacement = temp_dir / "a.tmp.mp4"
        original.write_bytes(b"old")
        replacement.write_bytes(b"new")

        replace_in_place(original, replacement)

        assert original.read_bytes() == b"new"
        assert not replacement.exists()
        assert not (temp_dir / "a.mp4.bkp").exists()

    def test_failed_move_restores_original(self, temp_dir, monkeypatch):
        """Both moves fail: the original is restored and every error kept."""
        from ffmpeg_simple import fileops
        from ffmpeg_simple.errors import ReplaceError

        original = temp_dir / "a.mp4"
        replacement = temp_dir / "a.tmp.mp4"
        original.write_bytes(b"old")
        replacement.write_bytes(b"new")

        real_rename = os.rename

        def rename(src, dst):
            if str(src) == str(replacement):
                raise OSError("rename failed")
            real_rename(src, dst)

        def move(src, dst):
            raise OSError("move failed")

        monkeypatch.setattr(fileops.os, "rename", rename)
        monkeypatch.setattr(fileops.shutil, "move", move)

        with pytest.raises(ReplaceError) as exc:
            fileops.replace_in_place(original, replacement)

        assert len(exc.value.errors) == 2
        assert "restored" in exc.value.message
        assert original.read_bytes() == b"old"
        assert replacement.exists()

    def test_failed_restore_keeps_backup(self, temp_dir, monkeypatch):
        """Moves and restore all fail: the error points at the surviving backup."""
        from ffmpeg_simple import fileops
        from ffmpeg_simple.errors import ReplaceError

        original = temp_dir / "a.mp4"
        replacement = temp_dir / "a.tmp.mp4"
        backup = temp_dir / "a.mp4.bkp"
        original.write_bytes(b"old")
        replacement.write_bytes(b"new")

        real_rename = os.rename

        def rename(src, dst):
            if str(src) in (str(replacement), str(backup)):
                raise OSError(f"rename of {src} failed")
            real_rename(src, dst)

        def move(src, dst):
            raise OSError("move failed")

        monkeypatch.setattr(fileops.os, "rename", rename)
        monkeypatch.setattr(fileops.shutil, "move", move)

        with pytest.raises(ReplaceError) as exc:
            fileops.replace_in_place(original, replacement)

        assert exc.value.backup == str(backup)
        assert len(exc.value.errors) == 3
        assert "original kept at" in exc.value.message
        assert isinstance(exc.value.__cause__, OSError)
        assert backup.read_bytes() == b"old"
        assert replacement.read_bytes() == b"new"
        assert not original.exists()

    def test_missing_original(self, temp_dir):
        """Nothing to back up."""
        from ffmpeg_simple.errors import ReplaceError
        from ffmpeg_simple.fileops import replace_in_place

        with pytest.raises(ReplaceError):
            replace_in_place(temp_dir / "missing.mp4", temp_dir / "new.mp4")
