"""
Unit tests for the ragcore command-line interface.

Runs the commands end to end in mock mode against a temporary database.
"""

import json
import logging

import pytest

from ragcore.cli import build_parser, main


ENV_NAMES = [
    "RAG_CONFIG", "RAG_DEFAULT_PROVIDER", "RAG_MOCK_MODE", "RAG_DB_PATH",
    "RAG_TOP_K", "RAG_SIMILARITY_THRESHOLD", "RAG_LOG_LEVEL",
    "OPENAI_API_KEY", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT", "GEMINI_API_KEY",
]


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)

    logger = logging.getLogger("ragcore")
    saved_handlers = list(logger.handlers)
    saved_level = logger.level

    path = tmp_path / "ragcore.yaml"
    path.write_text(
        "storage:\n"
        f"  db_path: {tmp_path / 'rag.db'}\n"
        "providers:\n"
        "  mock_mode: true\n"
        "  synthetic_dimensions: 16\n"
        "logging:\n"
        "  level: WARNING\n",
        encoding="utf-8",
    )
    yield path

    logger.handlers = saved_handlers
    logger.setLevel(saved_level)


@pytest.fixture
def guide(tmp_path):
    path = tmp_path / "guide.md"
    path.write_text("# Setup\nInstall the package.\n# Usage\nRun the command.", encoding="utf-8")
    return path


def run(config_file, *args):
    return main(["--config", str(config_file), *args])


class TestParser:
    """Tests for build_parser."""

    def test_search_options(self):
        """Test search flags are parsed."""
        args = build_parser().parse_args([
            "search", "system requirements", "--top-k", "3", "--threshold", "0.4",
            "--no-optional-fields", "--json",
        ])

        assert args.command == "search"
        assert args.top_k == 3
        assert args.threshold == 0.4
        assert args.no_optional_fields is True
        assert args.json is True

    def test_command_required(self):
        """Test a subcommand must be given."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_cache_action_choices(self):
        """Test unknown cache actions are rejected."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["cache", "flush"])


class TestCommands:
    """Tests for running CLI commands."""

    def test_ingest_and_list(self, config_file, guide, capsys):
        """Test a file is ingested and listed."""
        assert run(config_file, "ingest", str(guide), "--notes", "Reviewed") == 0
        assert "Chunks created: 2" in capsys.readouterr().out

        assert run(config_file, "documents") == 0
        out = capsys.readouterr().out
        assert "1 documents:" in out
        assert "guide.md [completed] 2 chunks" in out

    def test_search_json(self, config_file, guide, capsys):
        """Test search prints hits as JSON and caches the result."""
        run(config_file, "ingest", str(guide))
        capsys.readouterr()

        assert run(config_file, "search", "Setup", "--threshold", "-1", "--json") == 0
        first = json.loads(capsys.readouterr().out)
        run(config_file, "search", "Setup", "--threshold", "-1", "--json")
        second = json.loads(capsys.readouterr().out)

        assert first["synthetic"] is True
        assert len(first["hits"]) == 2
        assert first["from_cache"] is False
        assert second["from_cache"] is True

    def test_answer(self, config_file, guide, capsys):
        """Test answers list their sources."""
        run(config_file, "ingest", str(guide))
        capsys.readouterr()

        assert run(config_file, "answer", "How do I install it?", "--threshold", "-1") == 0
        assert "Sources:" in capsys.readouterr().out

    def test_reindex_repair_delete(self, config_file, guide, tmp_path, capsys):
        """Test maintenance commands on an ingested document."""
        run(config_file, "ingest", str(guide))
        replacement = tmp_path / "new.txt"
        replacement.write_text("Completely new text.", encoding="utf-8")
        capsys.readouterr()

        assert run(config_file, "reindex", "1", "--file", str(replacement)) == 0
        assert "completed, 1 chunks, 1 embeddings" in capsys.readouterr().out

        assert run(config_file, "repair", "1") == 0
        assert "0 embeddings added, 0 still failing" in capsys.readouterr().out

        assert run(config_file, "delete", "1") == 0
        assert run(config_file, "documents") == 0
        assert "0 documents:" in capsys.readouterr().out

    def test_cache_commands(self, config_file, guide, capsys):
        """Test cache stats and clear."""
        run(config_file, "ingest", str(guide))
        run(config_file, "search", "Setup", "--threshold", "-1")
        capsys.readouterr()

        assert run(config_file, "cache", "stats") == 0
        assert json.loads(capsys.readouterr().out)["total_entries"] == 1

        assert run(config_file, "cache", "clear") == 0
        assert "Removed 1 entries" in capsys.readouterr().out

    def test_providers(self, config_file, capsys):
        """Test the active backend is marked."""
        assert run(config_file, "providers") == 0

        out = capsys.readouterr().out
        assert " * synthetic: configured" in out
        assert "   openai: not configured" in out

    def test_ingest_rejects_unreadable_files(self, config_file, tmp_path, capsys):
        """Test unsupported types and invalid UTF-8 fail without creating documents."""
        image = tmp_path / "diagram.png"
        image.write_bytes(b"\x89PNG")
        latin1 = tmp_path / "menu.txt"
        latin1.write_bytes(b"caf\xe9 au lait")

        assert run(config_file, "ingest", str(image)) == 1
        assert "is not supported" in capsys.readouterr().err
        assert run(config_file, "ingest", str(latin1)) == 1
        assert "not valid UTF-8" in capsys.readouterr().err

        run(config_file, "documents")
        assert "0 documents:" in capsys.readouterr().out

    def test_ingest_content_type_option(self, config_file, tmp_path, capsys):
        """Test an explicit content type overrides the extension."""
        upload = tmp_path / "upload.bin"
        upload.write_text("Plain words here.", encoding="utf-8")

        assert run(config_file, "ingest", str(upload), "--content-type", "text/plain") == 0
        assert "Chunks created: 1" in capsys.readouterr().out

    def test_missing_document_fails(self, config_file, capsys):
        """Test errors are reported with a non-zero exit code."""
        assert run(config_file, "delete", "99") == 1
        assert "Error:" in capsys.readouterr().err
