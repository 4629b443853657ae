"""Tests for the plain file sink."""

import os

import pytest

from rotating_log.sink import FileSink


class TestFileSink:
    def test_creates_parent_directory(self, tmp_path):
        path = str(tmp_path / "nested" / "app.log")
        sink = FileSink(path)
        sink.write("x\n")
        sink.close()
        assert os.path.isfile(path)

    def test_appends_to_existing_file(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text("earlier\n")
        sink = FileSink(str(path))
        sink.write("later\n")
        sink.close()
        assert path.read_text() == "earlier\nlater\n"

    def test_identity_follows_open_stream(self, tmp_path):
        path = str(tmp_path / "app.log")
        sink = FileSink(path)
        st = os.stat(path)
        assert sink.identity() == (st.st_dev, st.st_ino)

        os.rename(path, path + ".old")
        sink.reopen()
        st = os.stat(path)
        assert sink.identity() == (st.st_dev, st.st_ino)
        sink.close()
        assert sink.identity() is None

    def test_write_after_close_raises(self, tmp_path):
        sink = FileSink(str(tmp_path / "app.log"))
        sink.close()
        assert sink.closed is True
        with pytest.raises(ValueError):
            sink.write("late\n")

    def test_format_delegates_to_formatter(self, tmp_path):
        sink = FileSink(str(tmp_path / "app.log"))
        assert sink.format("line") == "line\n"
        sink.close()
