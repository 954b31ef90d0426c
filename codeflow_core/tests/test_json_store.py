import json

import pytest

from codeflow_core.domain.conversation import ThreadCheckpoint
from codeflow_core.domain.exceptions import BusinessError, StoreError
from codeflow_core.domain.models import ToolCall, model_response, user_message
from codeflow_core.infrastructure.storage.json_store import JsonCheckpointStore


def _checkpoint(thread_id="t1", **kwargs):
    messages = [user_message("run tests"), model_response("", [ToolCall(id="c1", name="run_terminal_cmd", arguments={"cmd": "pytest"})])]
    return ThreadCheckpoint(thread_id=thread_id, role="coder", messages=messages, **kwargs)


def test_save_and_load(tmp_path):
    store = JsonCheckpointStore(root=tmp_path / ".storage")
    assert store.load("t1") is None
    checkpoint = _checkpoint(pending_stage="human_review", approval_request={"tool_call_id": "c1", "tool_name": "run_terminal_cmd"})
    store.save(checkpoint)

    path = tmp_path / ".storage" / "threads" / "t1" / "checkpoint.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["pending_stage"] == "human_review"
    assert data["updated_at"].endswith("Z")

    # a fresh store over the same root sees the same record
    loaded = JsonCheckpointStore(root=tmp_path / ".storage").load("t1")
    assert loaded == checkpoint
    assert [p.name for p in path.parent.iterdir()] == ["checkpoint.json"]


def test_list_and_delete(tmp_path):
    store = JsonCheckpointStore(root=tmp_path)
    store.save(_checkpoint("b"))
    store.save(_checkpoint("a"))
    assert store.list_threads() == ["a", "b"]
    store.delete("a")
    assert store.list_threads() == ["b"]
    with pytest.raises(BusinessError) as exc:
        store.delete("a")
    assert exc.value.code == "THREAD_NOT_FOUND"


def test_rejects_path_like_thread_ids(tmp_path):
    store = JsonCheckpointStore(root=tmp_path)
    for bad in ("", "..", "a/b", "a\\b"):
        with pytest.raises(BusinessError) as exc:
            store.load(bad)
        assert exc.value.code == "INVALID_THREAD_ID"


def test_corrupt_checkpoint(tmp_path):
    store = JsonCheckpointStore(root=tmp_path)
    tdir = tmp_path / "threads" / "t1"
    tdir.mkdir(parents=True)
    (tdir / "checkpoint.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreError) as exc:
        store.load("t1")
    assert exc.value.code == "STORE_READ_ERROR"
