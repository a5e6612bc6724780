"""
Unit tests for query execution, from query text to emitted records.
"""

import io
import json
import shutil
import threading
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from sysfinder.derive.context import LocationAliases, QueryContextBuilder
from sysfinder.errors import DerivationCancelled, DerivationExhausted, FilesystemAccessError
from sysfinder.models.config import ResolvedConfig
from sysfinder.models.criteria import FileCriteria, ProcessCriteria
from sysfinder.models.search_results import ProcessMatch
from sysfinder.models.tools import FindFilesInvocation, FindProcessesInvocation
from sysfinder.runner import execute, run_query


class ScriptedClient:
    def __init__(self, *replies):
        self.replies = list(replies)

    def complete(self, prompt):
        return self.replies.pop(0)


class TestRunQuery:
    """Test cases for run_query."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.home = Path(self.temp_dir).resolve()
        self.desktop = self.home / "Desktop"
        (self.desktop / "series").mkdir(parents=True)
        for name in ("a.mkv", "b.mkv", "series/c.mkv", "notes.txt"):
            (self.desktop / name).write_text(name)
        aliases = LocationAliases(home=self.home, system="Windows", config_home=self.home / ".config")
        self.builder = QueryContextBuilder(aliases=aliases, cwd=self.home)
        self.config = ResolvedConfig()

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _reply(self, root="desktop"):
        return json.dumps({"tool": "find_files", "parameters": {"root_dir": root, "name_pattern": "*.mkv"}})

    def test_find_mkv_files_on_desktop(self):
        """Test the whole flow for a file query."""
        stream = io.StringIO()

        count = run_query(
            "find all mkv files on my desktop", self.config,
            client=ScriptedClient(self._reply()), stream=stream, context_builder=self.builder,
        )

        paths = {json.loads(line)['path'] for line in stream.getvalue().splitlines()}
        assert count == 3
        assert paths == {str(self.desktop / "a.mkv"), str(self.desktop / "b.mkv"), str(self.desktop / "series" / "c.mkv")}

    def test_retry_before_search(self):
        stream = io.StringIO()
        client = ScriptedClient("I think you want find_files", self._reply())

        assert run_query("mkv on desktop", self.config, client=client, stream=stream,
                         context_builder=self.builder) == 3

    def test_derivation_failure(self):
        config = ResolvedConfig(num_derive_tries=1)
        with pytest.raises(DerivationExhausted):
            run_query("??", config, client=ScriptedClient("no"), stream=io.StringIO(), context_builder=self.builder)

    def test_cancel_stops_derivation(self):
        """Test that a set cancel event prevents any completion request."""
        cancel = threading.Event()
        cancel.set()
        client = ScriptedClient()

        with pytest.raises(DerivationCancelled):
            run_query("mkv on desktop", self.config, client=client, stream=io.StringIO(),
                      cancel=cancel, context_builder=self.builder)

    def test_missing_root(self):
        client = ScriptedClient(self._reply(root=str(self.home / "nowhere")))
        with pytest.raises(FilesystemAccessError):
            run_query("mkv in nowhere", self.config, client=client, stream=io.StringIO(),
                      context_builder=self.builder)

    def test_process_query_uses_process_engine(self):
        stream = io.StringIO()
        process_engine = MagicMock()
        process_engine.search.return_value = iter([ProcessMatch(name="Telegram", pid=25537)])
        client = ScriptedClient(json.dumps({"tool": "find_processes", "parameters": {"name_pattern": "gram"}}))

        count = run_query("is telegram running", self.config, client=client, stream=stream,
                          context_builder=self.builder, process_engine=process_engine)

        assert count == 1
        assert json.loads(stream.getvalue()) == {'name': "Telegram", 'pid': 25537}
        criteria = process_engine.search.call_args[0][0]
        assert criteria.name_pattern == "gram"


class TestExecute:
    """Test cases for execute."""

    def test_dispatches_files(self):
        file_engine = MagicMock()
        invocation = FindFilesInvocation(criteria=FileCriteria(root_dir="/tmp"))

        execute(invocation, file_engine=file_engine)

        file_engine.search.assert_called_once_with(invocation.criteria, None)

    def test_dispatches_processes(self):
        process_engine = MagicMock()
        invocation = FindProcessesInvocation(criteria=ProcessCriteria())

        execute(invocation, process_engine=process_engine)

        process_engine.search.assert_called_once_with(invocation.criteria, None)

    def test_rejects_other_values(self):
        with pytest.raises(TypeError):
            execute(object())
