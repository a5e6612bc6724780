"""
Unit tests for the tool catalog and tool descriptors.
"""

import pytest
from pydantic import ValidationError

from sysfinder.derive.catalog import DEFAULT_CATALOG, FIND_FILES_DESCRIPTOR, ToolCatalog
from sysfinder.errors import UnknownTool
from sysfinder.models.tools import DerivationAttempt, ParameterKind, ParameterSchema, ToolDescriptor


class TestToolCatalog:
    """Test cases for ToolCatalog class."""

    def test_default_tools(self):
        assert set(DEFAULT_CATALOG.names()) == {"find_files", "find_processes"}
        assert len(DEFAULT_CATALOG) == 2
        assert "find_files" in DEFAULT_CATALOG
        assert "rm_rf" not in DEFAULT_CATALOG
        assert None not in DEFAULT_CATALOG

    def test_lookup(self):
        descriptor = DEFAULT_CATALOG.lookup("find_processes")
        assert descriptor.name == "find_processes"
        assert descriptor.get_parameter("ports").kind == ParameterKind.PORT_SET

    def test_lookup_unknown(self):
        with pytest.raises(UnknownTool) as exc_info:
            DEFAULT_CATALOG.lookup("find_emails")
        assert exc_info.value.name == "find_emails"

    def test_lookup_unhashable(self):
        with pytest.raises(UnknownTool):
            DEFAULT_CATALOG.lookup(["find_files"])

    def test_iteration_order(self):
        assert [d.name for d in DEFAULT_CATALOG] == ["find_files", "find_processes"]
        assert DEFAULT_CATALOG.descriptors()[0] is FIND_FILES_DESCRIPTOR

    def test_custom_catalog(self):
        catalog = ToolCatalog([FIND_FILES_DESCRIPTOR])
        assert catalog.names() == ["find_files"]


class TestToolDescriptor:
    """Test cases for ToolDescriptor and ParameterSchema."""

    def test_find_files_schema(self):
        schema = FIND_FILES_DESCRIPTOR.parameter_schema()
        assert schema['required'] == ["root_dir"]
        assert schema['properties']['entry_type']['enum'] == ["file", "dir", "symlink", "any"]
        assert schema['properties']['size']['type'] == 'object'

    def test_summary_omits_parameters(self):
        summary = FIND_FILES_DESCRIPTOR.summary()
        assert set(summary) == {'name', 'description'}
        assert 'parameters' in FIND_FILES_DESCRIPTOR.to_dict()

    def test_enum_requires_choices(self):
        with pytest.raises(ValidationError):
            ParameterSchema(name="mode", kind=ParameterKind.ENUM)

    def test_descriptor_is_frozen(self):
        descriptor = ToolDescriptor(name="t", description="d")
        with pytest.raises(ValidationError):
            descriptor.name = "other"


class TestDerivationAttempt:
    """Test cases for DerivationAttempt class."""

    def test_succeeded(self):
        assert DerivationAttempt(pass_index=1, attempt_index=1, payload={}).succeeded
        assert not DerivationAttempt(pass_index=1, attempt_index=1, failure="bad").succeeded

    def test_raw_text_truncated(self):
        attempt = DerivationAttempt(pass_index=2, attempt_index=1, raw_text="x" * 5000)
        assert len(attempt.raw_text) == 4003

    def test_pass_index_bounds(self):
        with pytest.raises(ValidationError):
            DerivationAttempt(pass_index=3, attempt_index=1)
