"""Tests for upload parsing and storage."""

from __future__ import annotations

import pytest

from promptbench.errors import InvalidRequestError
from promptbench.uploads import parse_content, save_upload


class TestParseContent:
    def test_json(self):
        assert parse_content('{"a": [1, 2]}', "data.json") == {"a": [1, 2]}

    def test_json_scalar_and_list(self):
        assert parse_content("[1, 2]", "x.json") == [1, 2]
        assert parse_content("42", "x.json") == 42

    def test_text_fallback(self):
        assert parse_content("name,age\nbob,3", "people.csv") == {
            "content": "name,age\nbob,3",
            "type": "text",
            "filename": "people.csv",
        }


class TestSaveUpload:
    def test_json_file(self, tmp_path):
        result = save_upload("data.json", b'{"a": 1}', "application/json", upload_dir=tmp_path)
        assert result.data == {"a": 1}
        assert result.original_name == "data.json"
        assert result.size == 8
        assert result.file_type == "application/json"
        assert result.filename.endswith("-data.json")
        assert (tmp_path / result.filename).read_bytes() == b'{"a": 1}'

    def test_text_file(self, tmp_path):
        result = save_upload("notes.txt", b"plain words", "text/plain", upload_dir=tmp_path)
        assert result.data["type"] == "text"
        assert result.data["content"] == "plain words"

    def test_path_components_stripped(self, tmp_path):
        result = save_upload("../../etc/evil.json", b"{}", upload_dir=tmp_path)
        assert result.original_name == "evil.json"
        assert list(tmp_path.iterdir()) == [tmp_path / result.filename]

    def test_creates_upload_dir(self, tmp_path):
        target = tmp_path / "nested" / "uploads"
        save_upload("a.json", b"{}", upload_dir=target)
        assert target.is_dir()

    def test_no_file(self, tmp_path):
        with pytest.raises(InvalidRequestError) as exc:
            save_upload("", b"", upload_dir=tmp_path)
        assert exc.value.status_code == 400

    def test_too_large(self, tmp_path):
        with pytest.raises(InvalidRequestError) as exc:
            save_upload("big.json", b"x" * 11, upload_dir=tmp_path, max_bytes=10)
        assert exc.value.message == "File too large"
        assert list(tmp_path.iterdir()) == []

    def test_api_shape(self, tmp_path):
        row = save_upload("a.json", b"{}", upload_dir=tmp_path).to_api()
        assert set(row) == {"filename", "originalName", "data", "size", "fileType"}
