"""Tests for file scanning and safe path handling."""

import logging

import pytest

from vibe.tools.repo_io import is_binary_path, match_files, read_text_file, safe_join, scan_files


@pytest.fixture
def repo(tmp_path):
    """Small tree with excluded and hidden entries."""
    (tmp_path / "src" / "lib").mkdir(parents=True)
    (tmp_path / "src" / "a.js").write_text("const a = 1;\n")
    (tmp_path / "src" / "b.js").write_text("const b = 2;\n")
    (tmp_path / "src" / "lib" / "c.js").write_text("const c = 3;\n")
    (tmp_path / "src" / ".hidden.js").write_text("secret\n")
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "node_modules" / "pkg" / "index.js").write_text("module.exports = {};\n")
    (tmp_path / "dist").mkdir()
    (tmp_path / "dist" / "bundle.js").write_text("bundle\n")
    return tmp_path


class TestMatchFiles:
    """Glob matching with exclusions."""

    def test_recursive_glob_skips_excluded_and_hidden(self, repo):
        assert match_files(str(repo), "**/*.js") == ["src/a.js", "src/b.js", "src/lib/c.js"]

    def test_single_file(self, repo):
        assert match_files(str(repo), "src/a.js") == ["src/a.js"]

    def test_no_match(self, repo):
        assert match_files(str(repo), "**/*.py") == []

    def test_custom_excludes(self, repo):
        assert match_files(str(repo), "**/*.js", exclude_dirs=("lib",)) == [
            "dist/bundle.js", "node_modules/pkg/index.js", "src/a.js", "src/b.js",
        ]


class TestScanFiles:
    """Reading matched files."""

    def test_reads_content_and_metadata(self, repo):
        files = scan_files(str(repo), "src/*.js")

        assert [f.path for f in files] == ["src/a.js", "src/b.js"]
        assert files[0].content == "const a = 1;\n"
        assert files[0].size == len("const a = 1;\n")
        assert files[0].last_modified.tzinfo is not None

    def test_max_files_cap(self, repo):
        assert len(scan_files(str(repo), "**/*.js", max_files=2)) == 2

    def test_large_file_skipped_with_warning(self, repo, caplog):
        (repo / "src" / "big.js").write_text("x" * 2048)

        with caplog.at_level(logging.WARNING):
            files = scan_files(str(repo), "src/*.js", max_size=1024)

        assert "src/big.js" not in [f.path for f in files]
        assert "Skipping large file: src/big.js" in caplog.text

    def test_binary_file_skipped(self, repo, caplog):
        (repo / "src" / "blob.js").write_bytes(b"\x00\x01\x02")

        with caplog.at_level(logging.WARNING):
            files = scan_files(str(repo), "src/*.js")

        assert "src/blob.js" not in [f.path for f in files]
        assert "Could not read file: src/blob.js" in caplog.text


class TestSafeJoin:
    """Path traversal protection."""

    def test_inside_root(self, tmp_path):
        assert safe_join(str(tmp_path), "a/b.txt") == str(tmp_path.resolve() / "a" / "b.txt")

    def test_traversal_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="Path traversal"):
            safe_join(str(tmp_path), "../outside.txt")


def test_is_binary_path(tmp_path):
    assert is_binary_path("image.png")
    text = tmp_path / "notes.txt"
    text.write_text("hello")
    assert not is_binary_path(str(text))


def test_read_text_file_rejects_oversized(tmp_path):
    (tmp_path / "f.txt").write_text("abcdef")
    with pytest.raises(ValueError, match="too large"):
        read_text_file(str(tmp_path), "f.txt", max_bytes=3)
