# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for filesystem utilities.

Atomic writes are checked by making sure the target ends up with the full
new content and that no temp files are left next to it.
"""

from pathlib import Path

import pytest

from evalrs.utils.filesystem import TEMP_PREFIX, atomic_write, atomic_write_bytes, safe_read


class TestAtomicWrite:
    def test_writes_content_successfully(self, tmp_path: Path) -> None:
        target = tmp_path / "Cargo.toml"
        atomic_write(target, "[package]\n")

        assert target.read_text(encoding="utf-8") == "[package]\n"

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        target = tmp_path / "run" / "src" / "main.rs"
        atomic_write(target, "fn main() {}\n")

        assert target.read_text(encoding="utf-8") == "fn main() {}\n"

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "entry.json"
        atomic_write(target, "{}")
        atomic_write(target, '{"key": "abc"}')

        assert target.read_text(encoding="utf-8") == '{"key": "abc"}'

    def test_no_leftover_temp_files_on_success(self, tmp_path: Path) -> None:
        atomic_write(tmp_path / "clean.txt", "clean write")
        assert list(tmp_path.glob(f"{TEMP_PREFIX}*")) == []


class TestAtomicWriteBytes:
    def test_writes_binary_content(self, tmp_path: Path) -> None:
        target = tmp_path / "binary.bin"
        atomic_write_bytes(target, b"\x00\x01\x02\xff")
        assert target.read_bytes() == b"\x00\x01\x02\xff"


class TestSafeRead:
    def test_reads_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "readable.txt"
        target.write_text("read me", encoding="utf-8")
        assert safe_read(target) == "read me"

    def test_raises_on_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            safe_read(tmp_path / "missing.txt")

    def test_raises_on_directory(self, tmp_path: Path) -> None:
        with pytest.raises(IsADirectoryError):
            safe_read(tmp_path)
