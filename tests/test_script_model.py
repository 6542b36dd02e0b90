"""Step-sequence persistence: kind-tag dispatch and field-for-field round trips."""

import json

import pytest

from autoscript.actions import (
    ACTION_TYPES,
    KeyboardAction,
    KeyboardActionType,
    MouseClickAction,
    MouseClickType,
    WaitAction,
    WaitType,
    WindowAction,
    WindowActionType,
    WindowReferenceType,
)
from autoscript.control_actions import (
    ConditionType,
    IfAction,
    IfThenAction,
    LoopEndAction,
    LoopEndConditionType,
    LoopStartAction,
    VariableOperation,
    VariableSetAction,
)
from autoscript.file_actions import (
    FileCopyAction,
    FileDeleteAction,
    FileExistsAction,
    FileMoveAction,
    FileRenameAction,
    FileSystemType,
    FolderCreateAction,
)
from autoscript.script_model import AutomationScript, ScriptLoadError
from autoscript.webhook import WebhookAction, WebhookServiceType


def one_of_each_kind():
    """Every registered kind with non-default values in every field."""
    return [
        MouseClickAction(x=120, y=45, click_type=MouseClickType.DOUBLE, delay_after_ms=250),
        KeyboardAction(
            action_type=KeyboardActionType.HOTKEY,
            text="ignored",
            key="s",
            modifiers=["ctrl", "shift"],
            delay_between_keys_ms=5,
            continue_on_error=True,
        ),
        WaitAction(wait_type=WaitType.WINDOW_EXISTS, milliseconds=10, window_title="Notepad", timeout_seconds=7),
        WindowAction(
            action_type=WindowActionType.MAXIMIZE,
            executable_path="notepad.exe",
            arguments=["-a", "%date%.txt"],
            reference_type=WindowReferenceType.LAUNCH_ACTION,
            window_title="Editor",
            launch_action_position=1,
            wait_after_launch_ms=3000,
        ),
        FileCopyAction(source_path="in/a.txt", destination_path="out/", overwrite=True),
        FileMoveAction(source_path="in/b.txt", destination_path="archive/b.txt", enabled=False),
        FileDeleteAction(target_path="tmp", target_type=FileSystemType.FOLDER, recursive=True),
        FileRenameAction(source_path="out/a.txt", new_name="a_%date%.txt", overwrite=True),
        FolderCreateAction(folder_path="reports/%year%"),
        FileExistsAction(
            target_path="reports",
            target_type=FileSystemType.FOLDER,
            fail_if_not_exists=False,
            result_variable="has_reports",
        ),
        VariableSetAction(variable_name="counter", value="2", operation=VariableOperation.SUBTRACT),
        IfAction(
            left_value="%counter%",
            right_value="10",
            condition_type=ConditionType.LESS_THAN_OR_EQUAL,
            then_action=IfThenAction.JUMP_TO_ACTION,
            jump_to_position=3,
        ),
        LoopStartAction(comment="retry"),
        LoopEndAction(
            loop_start_position=13,
            end_condition_type=LoopEndConditionType.IF_NOT_EMPTY,
            left_value="%result%",
            right_value="x",
            max_iterations=7,
        ),
        WebhookAction(
            webhook_url="https://hooks.example.com/abc",
            service_type=WebhookServiceType.DISCORD,
            message="done on %date%",
            custom_payload='{"a": 1}',
            timeout_ms=2500,
        ),
    ]


class TestRoundTrip:
    def test_fixture_covers_every_registered_kind(self):
        assert {a.kind for a in one_of_each_kind()} == set(ACTION_TYPES)

    def test_save_then_load_is_field_for_field_equal(self, tmp_path):
        script = AutomationScript(name="everything", actions=one_of_each_kind())
        path = tmp_path / "everything" / "script.rpa.json"

        script.save(path)
        loaded = AutomationScript.load(path)

        assert loaded.name == "everything"
        assert [type(a) for a in loaded.actions] == [type(a) for a in script.actions]
        assert loaded.actions == script.actions

    @pytest.mark.parametrize("action", one_of_each_kind(), ids=lambda a: a.kind)
    def test_each_kind_round_trips_through_dict(self, action):
        data = json.loads(json.dumps(AutomationScript(actions=[action]).to_dict()))
        assert AutomationScript.from_dict(data).actions == [action]

    def test_save_is_atomic_and_leaves_no_temp_file(self, tmp_path):
        path = tmp_path / "s.json"
        AutomationScript(actions=[LoopStartAction()]).save(path)

        assert path.exists()
        assert not (tmp_path / "s.json.tmp").exists()


class TestFormat:
    def test_entries_carry_kind_tag_and_payload(self):
        data = AutomationScript(actions=[MouseClickAction(x=1, y=2, click_type=MouseClickType.RIGHT)]).to_dict()

        entry = data["actions"][0]
        assert entry["type"] == "mouse_click"
        assert entry["data"]["click_type"] == "right"
        assert entry["data"]["x"] == 1

    def test_runtime_state_is_not_persisted(self):
        loop_end = LoopEndAction(loop_start_position=1)
        loop_end.current_iteration = 5
        loop_end.last_error = "old"
        loop_end.position = 4

        payload = loop_end.to_dict()

        for runtime in ("current_iteration", "last_error", "position", "context", "control"):
            assert runtime not in payload

    def test_unknown_payload_keys_are_ignored_and_missing_keys_default(self):
        data = {"actions": [{"type": "wait", "data": {"milliseconds": 42, "legacy": True}}]}

        script = AutomationScript.from_dict(data)

        assert script.name == "Unnamed Script"
        assert script.actions == [WaitAction(milliseconds=42)]

    @pytest.mark.parametrize("raw, expected", [("false", False), ("False", False), ("0", False), ("true", True), (False, False), (1, True)])
    def test_boolean_fields_accept_text(self, raw, expected):
        data = {"actions": [{"type": "wait", "data": {"milliseconds": 1, "enabled": raw}}]}

        assert AutomationScript.from_dict(data).actions[0].enabled is expected

    def test_kind_tag_is_case_insensitive(self):
        script = AutomationScript.from_dict({"actions": [{"type": "Loop_Start", "data": {}}]})
        assert script.actions == [LoopStartAction()]


class TestLoadErrors:
    def test_unknown_kind_fails_the_whole_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({
            "name": "bad",
            "actions": [
                {"type": "wait", "data": {}},
                {"type": "excel_write", "data": {}},
            ],
        }), encoding="utf-8")

        with pytest.raises(ScriptLoadError, match=r"Step #2: Unknown action type: excel_write"):
            AutomationScript.load(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ScriptLoadError, match="File not found"):
            AutomationScript.load(tmp_path / "nope.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ScriptLoadError, match="Failed to read script"):
            AutomationScript.load(path)

    def test_invalid_enum_value(self):
        data = {"actions": [{"type": "mouse_click", "data": {"click_type": "sideways"}}]}

        with pytest.raises(ScriptLoadError, match="Step #1"):
            AutomationScript.from_dict(data)

    def test_unreadable_boolean(self):
        data = {"actions": [{"type": "wait", "data": {"enabled": "maybe"}}]}

        with pytest.raises(ScriptLoadError, match="Step #1"):
            AutomationScript.from_dict(data)

    @pytest.mark.parametrize("data", [[], {"actions": {"a": 1}}, {"actions": ["wait"]}])
    def test_structurally_invalid(self, data):
        with pytest.raises(ScriptLoadError):
            AutomationScript.from_dict(data)
