import pytest

from codeflow_core.config.settings import Settings
from codeflow_core.domain.exceptions import ValidationError
from codeflow_core.tools import ROLES, build_registries, build_registry


READ_TOOLS = {"search_codebase", "grep", "read_file", "global_file_search", "list_dir", "run_terminal_cmd"}


def test_each_role_gets_its_own_tool_set(tmp_path):
    registries = build_registries(tmp_path)
    assert set(registries) == set(ROLES)
    assert set(registries["coder"]) == READ_TOOLS | {"write_file", "diff_edit_file"}
    for role in ("reviewer", "planner", "creator"):
        assert set(registries[role]) == READ_TOOLS
        assert registries[role].role == role


def test_approval_flags_follow_settings(tmp_path):
    coder = build_registry("coder", tmp_path)
    assert coder.approval_required == {"diff_edit_file", "run_terminal_cmd"}
    assert build_registry("reviewer", tmp_path).approval_required == {"run_terminal_cmd"}

    cfg = Settings(human_approval_tools=["write_file"], workspace_root=str(tmp_path))
    assert build_registry("coder", config=cfg).approval_required == {"write_file"}


def test_registry_is_read_only(tmp_path):
    registry = build_registry("planner", tmp_path)
    with pytest.raises(TypeError):
        registry._tools["write_file"] = registry["read_file"]


def test_unknown_role(tmp_path):
    with pytest.raises(ValidationError) as exc:
        build_registry("ide-helper", tmp_path)
    assert exc.value.code == "INVALID_ROLE"


def test_parameters_schema_uses_wire_names(tmp_path):
    schema = build_registry("coder", tmp_path)["read_file"].parameters_schema()
    assert schema["type"] == "object"
    assert schema["required"] == ["filePath"]
    assert set(schema["properties"]) == {"filePath", "startLine", "endLine"}
    assert schema["properties"]["startLine"]["type"] == "integer"
    assert "anyOf" not in schema["properties"]["startLine"]
