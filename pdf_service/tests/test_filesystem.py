"""Filesystem gateway and naming tests."""

import pytest

from pdf_service.errors import NotFoundError, ValidationError
from pdf_service.storage import filesystem


def test_generate_key_is_unique():
    keys = {filesystem.generate_key() for _ in range(100)}
    assert len(keys) == 100


def test_sanitize_filename_replaces_unsafe_characters():
    assert filesystem.sanitize_filename("my report (v2).pdf") == "my_report_v2_.pdf"
    assert filesystem.sanitize_filename("__draft__.pdf") == "draft_.pdf"
    assert filesystem.sanitize_filename("../../etc/passwd") == ".._.._etc_passwd"


def test_sanitize_filename_caps_length():
    assert len(filesystem.sanitize_filename("a" * 500 + ".pdf")) == 200


def test_sanitize_filename_rejects_empty_name():
    with pytest.raises(ValidationError):
        filesystem.sanitize_filename("")


def test_truncated_file_name():
    assert filesystem.truncated_file_name("contract.pdf") == "contract_truncated.pdf"
    assert filesystem.truncated_file_name("archive.v2.pdf") == "archive.v2_truncated.pdf"
    assert filesystem.truncated_file_name("noext") == "noext_truncated"


def test_delete_is_idempotent(tmp_path):
    path = tmp_path / "file.bin"
    path.write_bytes(b"data")

    filesystem.delete(path)
    assert not path.exists()

    # Second delete of the same path is a no-op
    filesystem.delete(path)


def test_exists_and_stat_size(tmp_path):
    path = tmp_path / "file.bin"
    assert filesystem.exists(path) is False

    path.write_bytes(b"12345")
    assert filesystem.exists(path) is True
    assert filesystem.stat_size(path) == 5


def test_stat_size_of_missing_file_is_not_found(tmp_path):
    with pytest.raises(NotFoundError):
        filesystem.stat_size(tmp_path / "missing.bin")


def test_ensure_dir_creates_nested_directories(tmp_path):
    target = tmp_path / "a" / "b" / "c"
    assert filesystem.ensure_dir(target) == target
    assert target.is_dir()
    # Existing directory is fine
    filesystem.ensure_dir(target)


def test_format_file_size():
    assert filesystem.format_file_size(0) == "0 Bytes"
    assert filesystem.format_file_size(512) == "512 Bytes"
    assert filesystem.format_file_size(1536) == "1.5 KB"
    assert filesystem.format_file_size(52428800) == "50 MB"
