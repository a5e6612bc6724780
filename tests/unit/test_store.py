"""
Unit tests for the persisted configuration store.
"""

import tempfile
import shutil
from pathlib import Path

import pytest

from sysfinder.config.store import (
    DEFAULT_VALUES,
    SCHEMA_VERSION,
    get_value,
    open_store,
    read_values,
    schema_version,
    set_value,
)
from sysfinder.errors import ConfigurationError


class TestConfigStore:
    """Test cases for the SQLite configuration store."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "state" / "sysfinder.db"

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_created_and_seeded(self):
        """Test that a new store gets the schema version and default values."""
        con = open_store(self.db_path)
        try:
            assert schema_version(con) == SCHEMA_VERSION
            assert get_value(con, 'listen_address') == '127.0.0.1:7878'
            assert get_value(con, 'llm_model') == 'qwen2.5'
            assert get_value(con, 'missing') is None
        finally:
            con.close()
        assert self.db_path.exists()

    def test_seeded_once(self):
        """Test that reopening does not reseed over changed values."""
        con = open_store(self.db_path)
        set_value(con, 'llm_model', 'llama3')
        con.close()

        con = open_store(self.db_path)
        try:
            assert get_value(con, 'llm_model') == 'llama3'
            assert con.execute("SELECT COUNT(*) FROM schema").fetchone()[0] == 1
        finally:
            con.close()

    def test_set_value_upserts(self):
        con = open_store(self.db_path)
        try:
            set_value(con, 'llm_base_url', 'http://a:1')
            set_value(con, 'llm_base_url', 'http://b:2')
            assert get_value(con, 'llm_base_url') == 'http://b:2'
        finally:
            con.close()

    def test_read_values(self):
        assert read_values(self.db_path) == DEFAULT_VALUES

    def test_newer_schema_rejected(self):
        con = open_store(self.db_path)
        with con:
            con.execute("UPDATE schema SET version = ?", (SCHEMA_VERSION + 1,))
        con.close()

        with pytest.raises(ConfigurationError, match="newer"):
            read_values(self.db_path)

    def test_not_a_database(self):
        self.db_path.parent.mkdir(parents=True)
        self.db_path.write_bytes(b"this is not sqlite" * 100)

        with pytest.raises(ConfigurationError):
            read_values(self.db_path)

    def test_missing_schema_row(self):
        con = open_store(self.db_path)
        with con:
            con.execute("DELETE FROM schema")
        try:
            with pytest.raises(ConfigurationError):
                schema_version(con)
        finally:
            con.close()
