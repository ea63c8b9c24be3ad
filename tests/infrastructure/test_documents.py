"""Tests for documentation tree scanning."""

from datetime import timedelta

from intentflow.infrastructure.documents import document_stats, markdown_files


class TestMarkdownFiles:
    def test_skips_build_and_vcs_directories(self, workspace, write_doc):
        docs = workspace.docs_dir
        write_doc(docs, "index.md", "# Index")
        write_doc(docs, "guides/setup.md", "# Setup")
        write_doc(docs, "node_modules/pkg/readme.md", "# Vendored")
        write_doc(docs, "_site/index.md", "# Built")
        write_doc(docs, ".git/notes.md", "# Notes")
        (docs / "notes.txt").write_text("not markdown")

        names = [p.relative_to(docs).as_posix() for p in markdown_files(docs)]
        assert names == ["guides/setup.md", "index.md"]

    def test_missing_directory(self, tmp_path):
        assert markdown_files(tmp_path / "absent") == []


class TestDocumentStats:
    def test_empty_tree(self, workspace, fixed_now):
        stats = document_stats(workspace.docs_dir, fixed_now)
        assert stats.total_documents == 0
        assert stats.oldest_document is None

    def test_aggregates(self, workspace, write_doc, fixed_now):
        docs = workspace.docs_dir
        write_doc(docs, "index.md", "a" * 10)
        write_doc(docs, "guides/one.md", "b" * 20, age_days=40)
        write_doc(docs, "guides/two.md", "c" * 30, age_days=5)

        stats = document_stats(docs, fixed_now)

        assert stats.total_documents == 3
        assert stats.average_size == 20
        assert stats.documents_by_category == {".": 1, "guides": 2}
        assert stats.stale_documents == ["guides/one.md"]
        assert stats.oldest_document == fixed_now - timedelta(days=40)
        assert stats.newest_document == fixed_now

    def test_custom_window(self, workspace, write_doc, fixed_now):
        write_doc(workspace.docs_dir, "a.md", "x", age_days=5)
        stats = document_stats(workspace.docs_dir, fixed_now, window=timedelta(days=1))
        assert stats.stale_documents == ["a.md"]
