"""
Unit tests for the command line interface.

The query runner is mocked; these tests cover option handling,
configuration loading and the exit status of each outcome.
"""

import os
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import yaml
from typer.testing import CliRunner

from sysfinder.cli import EXIT_CONFIG, EXIT_FAILURE, EXIT_INTERRUPTED, app, build_overrides
from sysfinder.errors import DerivationCancelled, DerivationExhausted, FilesystemAccessError
from sysfinder.models.config import LlmApi


class TestCli:
    """Test cases for the sysfinder command."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "sysfinder.yaml"
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.dump({'num_derive_tries': 2}, f)
        self.runner = CliRunner()

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _invoke(self, *args):
        return self.runner.invoke(app, [*args, "--config", str(self.config_path)])

    def test_success(self):
        with patch('sysfinder.cli.run_query', return_value=3) as run_query:
            result = self._invoke("find all mkv files on my desktop")

        assert result.exit_code == 0
        query, config = run_query.call_args[0]
        assert query == "find all mkv files on my desktop"
        assert config.num_derive_tries == 2

    def test_options_override_file(self):
        with patch('sysfinder.cli.run_query', return_value=0) as run_query:
            result = self._invoke("is telegram running", "--num-derive-tries", "5", "--double-pass")

        assert result.exit_code == 0
        config = run_query.call_args[0][1]
        assert config.num_derive_tries == 5
        assert config.double_pass_derive is True

    def test_store_overlay(self):
        store = Path(self.temp_dir) / "state.db"
        with patch('sysfinder.cli.run_query', return_value=0) as run_query:
            result = self._invoke("anything", "--store", str(store))

        assert result.exit_code == 0
        assert store.exists()
        assert run_query.call_args[0][1].llm.ollama.model == "qwen2.5"

    def test_derivation_failure_exit_status(self):
        error = DerivationExhausted(1, 2, "MalformedCompletionResponse: no JSON")
        with patch('sysfinder.cli.run_query', side_effect=error):
            result = self._invoke("find stuff")

        assert result.exit_code == EXIT_FAILURE
        assert "Failed to derive" in result.output

    def test_search_failure_exit_status(self):
        with patch('sysfinder.cli.run_query', side_effect=FilesystemAccessError("/nope", "No such file")):
            result = self._invoke("find stuff in /nope")

        assert result.exit_code == EXIT_FAILURE
        assert "/nope" in result.output

    def test_missing_config_file(self):
        result = self.runner.invoke(app, ["find stuff", "--config", str(Path(self.temp_dir) / "missing.yaml")])
        assert result.exit_code == EXIT_CONFIG

    def test_open_ai_backend_without_section(self):
        """Test that open_ai can be selected with only the API key in the environment."""
        with patch.dict(os.environ, {'OPENAI_API_KEY': 'sk-env'}), \
                patch('sysfinder.cli.run_query', return_value=0) as run_query:
            result = self._invoke("find stuff", "--llm-api", "open_ai")

        assert result.exit_code == 0
        llm = run_query.call_args[0][1].llm
        assert llm.api == LlmApi.OPEN_AI
        assert llm.open_ai.resolve_key() == 'sk-env'

    def test_store_overlays_selected_backend(self):
        store = Path(self.temp_dir) / "state.db"
        with patch('sysfinder.cli.run_query', return_value=0) as run_query:
            result = self._invoke("find stuff", "--llm-api", "open_ai", "--store", str(store))

        assert result.exit_code == 0
        llm = run_query.call_args[0][1].llm
        assert llm.open_ai.model == "qwen2.5"
        assert llm.ollama.model == "qwen2.5"

    def test_invalid_configuration_value(self):
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.dump({'llm': {'api': 'claude'}}, f)

        with patch('sysfinder.cli.run_query') as run_query:
            result = self._invoke("find stuff")

        assert result.exit_code == EXIT_CONFIG
        run_query.assert_not_called()

    def test_interrupted(self):
        def interrupted(query, config, cancel):
            cancel.set()
            return 0

        with patch('sysfinder.cli.run_query', side_effect=interrupted):
            result = self._invoke("find stuff")

        assert result.exit_code == EXIT_INTERRUPTED

    def test_interrupted_during_derivation(self):
        def interrupted(query, config, cancel):
            cancel.set()
            raise DerivationCancelled(1, 1)

        with patch('sysfinder.cli.run_query', side_effect=interrupted):
            result = self._invoke("find stuff")

        assert result.exit_code == EXIT_INTERRUPTED
        assert "Failed to derive" not in result.output

    def test_empty_query(self):
        with patch('sysfinder.cli.run_query') as run_query:
            result = self._invoke("   ")

        assert result.exit_code == 2
        run_query.assert_not_called()


class TestBuildOverrides:
    """Test cases for build_overrides."""

    def test_nothing_set(self):
        assert build_overrides(None, None, None) == {}

    def test_all_set(self):
        assert build_overrides(LlmApi.OPEN_AI, 4, False) == {
            'llm': {'api': 'open_ai'},
            'num_derive_tries': 4,
            'double_pass_derive': False,
        }
