import pytest
from langgraph.graph import END

from codeflow_core.domain.exceptions import ApiError, BackendError, ValidationError
from codeflow_core.domain.models import ChatChoice, ChatResult, ToolCall, model_response, user_message
from codeflow_core.flows import ApprovalDecision, TurnController
from codeflow_core.flows.graph import route_after_llm
from codeflow_core.infrastructure.storage.json_store import JsonCheckpointStore
from codeflow_core.tools import SearchHit, build_registries


class FakeBackend:
    """按顺序返回预设的模型响应，并记录每次请求。"""

    name = "fake"

    def __init__(self, *responses):
        self._responses = list(responses)
        self.requests = []

    def chat(self, req):
        self.requests.append(req)
        item = self._responses.pop(0) if self._responses else model_response("done")
        if isinstance(item, Exception):
            raise item
        return ChatResult(provider=self.name, model=req.model, choices=[ChatChoice(index=0, message=item)])


class FakeIndex:
    def is_ready(self):
        return True

    def search(self, query, k):
        return [SearchHit(file="src/app.py", start_line=1, end_line=2, snippet="def handler(): ...", score=0.8)]


def call(call_id, name, **arguments):
    return ToolCall(id=call_id, name=name, arguments=arguments)


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "proj"
    root.mkdir()
    (root / "app.py").write_text("def handler():\n    return 1\n", encoding="utf-8")
    return root


@pytest.fixture
def store(tmp_path):
    return JsonCheckpointStore(root=tmp_path / ".storage")


def make_controller(backend, store, workspace, **kwargs):
    registries = build_registries(workspace, search_index=FakeIndex())
    return TurnController(backend, store, registries, **kwargs)


def test_plain_answer_completes(store, workspace):
    backend = FakeBackend(model_response("hello there"))
    outcome = make_controller(backend, store, workspace).start_turn("t1", "coder", "hi")
    assert outcome.status == "completed"
    assert outcome.final_response == "hello there"
    assert [m.role for m in outcome.messages] == ["user", "assistant"]

    req = backend.requests[0]
    assert req.messages[0].role == "system"
    assert req.messages[1].content == "hi"
    assert {t.name for t in req.tools} >= {"diff_edit_file", "run_terminal_cmd"}


def test_non_approval_tool_runs_without_suspension(store, workspace):
    backend = FakeBackend(model_response("", [call("c1", "search_codebase", query="handler")]), model_response("found it"))
    controller = make_controller(backend, store, workspace)
    outcome = controller.start_turn("t1", "reviewer", "where is the handler?")

    assert outcome.status == "completed"
    assert outcome.approval_request is None
    assert [m.role for m in outcome.messages] == ["user", "assistant", "tool", "assistant"]
    assert "src/app.py" in outcome.messages[2].content
    assert controller.pending_approval("t1") is None
    assert len(backend.requests) == 2


def test_reject_ends_turn_without_running_tools(store, workspace):
    backend = FakeBackend(model_response("", [call("c1", "run_terminal_cmd", cmd="echo hi > made.txt")]))
    controller = make_controller(backend, store, workspace)

    outcome = controller.start_turn("t1", "coder", "make a file")
    assert outcome.status == "suspended"
    request = outcome.approval_request
    assert request.tool_name == "run_terminal_cmd"
    assert request.tool_call_id == "c1"
    assert request.args == {"cmd": "echo hi > made.txt"}
    assert controller.pending_approval("t1") == request

    outcome = controller.resume("t1", "coder", ApprovalDecision.reject())
    assert outcome.status == "rejected"
    assert not (workspace / "made.txt").exists()
    declined = outcome.messages[-1]
    assert declined.role == "tool" and declined.is_error
    assert declined.content.startswith("Not executed")
    assert len(backend.requests) == 1
    assert controller.pending_approval("t1") is None


def test_approval_happens_before_any_tool_in_the_response(store, workspace):
    response = model_response(
        "",
        [
            call("c1", "write_file", filePath="notes.txt", content="draft\n"),
            call("c2", "run_terminal_cmd", cmd="cat notes.txt"),
        ],
    )
    backend = FakeBackend(response, model_response("all done"))
    controller = make_controller(backend, store, workspace)

    outcome = controller.start_turn("t1", "coder", "write and show notes")
    assert outcome.status == "suspended"
    assert outcome.approval_request.pending_tools == ("write_file", "run_terminal_cmd")
    assert not (workspace / "notes.txt").exists()

    outcome = controller.resume("t1", "coder", ApprovalDecision.accept())
    assert outcome.status == "completed"
    assert outcome.final_response == "all done"
    tool_messages = [m for m in outcome.messages if m.role == "tool"]
    assert [m.tool_call_id for m in tool_messages] == ["c1", "c2"]
    assert tool_messages[1].content == "draft"


def test_respond_feeds_back_to_the_model(store, workspace):
    edit = call("c1", "diff_edit_file", path="app.py", diff="@@ -2,1 +2,1 @@\n-    return 1\n+    return 2\n")
    backend = FakeBackend(model_response("", [edit]), model_response("ok, leaving it"))
    controller = make_controller(backend, store, workspace)

    controller.start_turn("t1", "coder", "bump the value")
    outcome = controller.resume("t1", "coder", ApprovalDecision.from_dict({"type": "response", "args": "keep it at 1"}))

    assert outcome.status == "completed"
    assert (workspace / "app.py").read_text(encoding="utf-8") == "def handler():\n    return 1\n"
    roles = [m.role for m in outcome.messages]
    assert roles == ["user", "assistant", "tool", "user", "assistant"]
    assert outcome.messages[3].content == "keep it at 1"
    assert backend.requests[1].messages[-1].content == "keep it at 1"


def test_resume_after_restart(store, workspace):
    edit = call("c1", "diff_edit_file", path="app.py", diff="@@ -2,1 +2,1 @@\n-    return 1\n+    return 2\n")
    make_controller(FakeBackend(model_response("", [edit])), store, workspace).start_turn("t1", "coder", "bump")

    # a new controller over the same store picks up the suspended thread
    backend = FakeBackend(model_response("bumped"))
    controller = make_controller(backend, store, workspace)
    assert controller.pending_approval("t1").tool_name == "diff_edit_file"
    outcome = controller.resume("t1", "coder", ApprovalDecision.accept())

    assert outcome.status == "completed"
    assert (workspace / "app.py").read_text(encoding="utf-8") == "def handler():\n    return 2\n"
    assert outcome.messages[-2].content.startswith("File edited successfully using diff: app.py")


def test_suspended_thread_guards(store, workspace):
    backend = FakeBackend(model_response("", [call("c1", "run_terminal_cmd", cmd="ls")]))
    controller = make_controller(backend, store, workspace)
    controller.start_turn("t1", "coder", "list files")

    with pytest.raises(ValidationError) as exc:
        controller.start_turn("t1", "coder", "something else")
    assert exc.value.code == "THREAD_SUSPENDED"

    with pytest.raises(ValidationError) as exc:
        controller.resume("t1", "reviewer", ApprovalDecision.accept())
    assert exc.value.code == "ROLE_MISMATCH"

    with pytest.raises(ValidationError) as exc:
        controller.resume("t2", "coder", ApprovalDecision.accept())
    assert exc.value.code == "NOTHING_PENDING"

    with pytest.raises(ValidationError) as exc:
        controller.start_turn("t3", "ide-helper", "hi")
    assert exc.value.code == "INVALID_ROLE"


def test_backend_failure_appends_nothing(store, workspace):
    backend = FakeBackend(RuntimeError("socket closed"))
    controller = make_controller(backend, store, workspace)
    with pytest.raises(BackendError) as exc:
        controller.start_turn("t1", "coder", "hi")
    assert exc.value.code == "BACKEND_ERROR"
    assert [m.role for m in controller.get_conversation("t1").messages] == ["user"]


def test_backend_failure_keeps_completed_tool_round(store, workspace):
    backend = FakeBackend(
        model_response("", [call("c1", "read_file", filePath="app.py")]),
        ApiError(code="API_ERROR", message="upstream 502", http_status=502),
    )
    controller = make_controller(backend, store, workspace)
    with pytest.raises(ApiError):
        controller.start_turn("t1", "coder", "read app.py")
    messages = controller.get_conversation("t1").messages
    assert [m.role for m in messages] == ["user", "assistant", "tool"]

    # the thread is still usable afterwards
    backend._responses.append(model_response("recovered"))
    assert controller.start_turn("t1", "coder", "try again").final_response == "recovered"


def test_round_limit(store, workspace):
    looping = [model_response("", [call(f"c{i}", "list_dir")]) for i in range(5)]
    backend = FakeBackend(*looping)
    outcome = make_controller(backend, store, workspace, max_rounds=2).start_turn("t1", "planner", "explore forever")
    assert outcome.status == "max_rounds"
    assert len(backend.requests) == 2
    assert outcome.messages[-1].role == "tool"


def test_malformed_routing_input_ends_turn(workspace):
    registries = build_registries(workspace)
    assert route_after_llm({"role": "coder", "messages": []}, registries) == END
    assert route_after_llm({"role": "coder", "messages": [user_message("hi")]}, registries) == END
    response = model_response("", [call("c1", "list_dir")])
    assert route_after_llm({"role": "coder", "messages": [user_message("hi"), response]}, registries) == "run_tool"


@pytest.mark.parametrize(
    "decision",
    [
        ApprovalDecision.from_dict({"type": "maybe"}),
        ApprovalDecision.from_dict({"type": "ignore"}),
        ApprovalDecision(kind=""),
    ],
)
def test_unrecognized_decision_is_a_reject(store, workspace, decision):
    backend = FakeBackend(model_response("", [call("c1", "run_terminal_cmd", cmd="echo hi > made.txt")]))
    controller = make_controller(backend, store, workspace)
    controller.start_turn("t1", "coder", "make a file")

    outcome = controller.resume("t1", "coder", decision)
    assert outcome.status == "rejected"
    assert not (workspace / "made.txt").exists()
    assert outcome.messages[-1].is_error
    assert outcome.messages[-1].content.startswith("Not executed")
    assert len(backend.requests) == 1


def test_respond_not_allowed_by_request_config_is_a_reject(store, workspace):
    backend = FakeBackend(model_response("", [call("c1", "run_terminal_cmd", cmd="echo hi > made.txt")]))
    controller = make_controller(backend, store, workspace)
    controller.start_turn("t1", "coder", "make a file")

    checkpoint = store.load("t1")
    checkpoint.approval_request["config"]["allow_respond"] = False
    store.save(checkpoint)

    outcome = controller.resume("t1", "coder", ApprovalDecision.respond("try another way"))
    assert outcome.status == "rejected"
    assert not (workspace / "made.txt").exists()
    assert [m.role for m in outcome.messages] == ["user", "assistant", "tool"]
    assert len(backend.requests) == 1


def test_resume_requires_a_decision(store, workspace):
    backend = FakeBackend(model_response("", [call("c1", "run_terminal_cmd", cmd="ls")]))
    controller = make_controller(backend, store, workspace)
    controller.start_turn("t1", "coder", "list files")

    for bad in (None, {"kind": "accept"}):
        with pytest.raises(ValidationError) as exc:
            controller.resume("t1", "coder", bad)
        assert exc.value.code == "INVALID_DECISION"
    # still waiting for a real decision
    assert controller.pending_approval("t1").tool_call_id == "c1"


def test_thread_locks_are_released_after_turns(store, workspace):
    controller = make_controller(FakeBackend(), store, workspace)
    for i in range(3):
        controller.start_turn(f"t{i}", "planner", "hi")
    assert len(controller._locks) == 0
