"""%token% expansion: built-ins, run variables, custom variables, caching."""

import json

import pytest

from autoscript.actions import MouseClickAction
from autoscript.file_actions import FileCopyAction
from autoscript.settings_manager import AppSettings, SettingsManager
from autoscript.templates import SettingsVariableProvider, TemplateExpander, builtin_variables

from conftest import FIXED_NOW, FakeClock


class CountingProvider:
    def __init__(self, values):
        self.values = dict(values)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return dict(self.values)


class TestBuiltins:
    @pytest.mark.parametrize("text, expected", [
        ("%date%", "2024-03-05"),
        ("%time%", "07-08-09"),
        ("%datetime%", "2024-03-05_07-08-09"),
        ("%timestamp%", "20240305070809"),
        ("%year%/%month%/%day%", "2024/03/05"),
        ("%hour%:%minute%:%second%", "07:08:09"),
    ])
    def test_clock_tokens(self, expander, text, expected):
        assert expander.expand(text) == expected

    def test_identity_tokens_are_present(self):
        values = builtin_variables(FIXED_NOW)
        assert "user" in values
        assert "computer" in values

    def test_same_day_yields_same_literal(self, expander, clock):
        first = expander.expand("report_%date%.csv")
        clock.now = clock.now.replace(hour=23, minute=59)
        assert expander.expand("report_%date%.csv") == first


class TestExpand:
    def test_unknown_tokens_are_left_untouched(self, expander):
        assert expander.expand("%nope% and %date%") == "%nope% and 2024-03-05"

    @pytest.mark.parametrize("text", [
        "plain text",
        "50% off",
        "%date%_%unknown%_%timestamp%",
        "%%date%%",
    ])
    def test_idempotent(self, expander, text):
        once = expander.expand(text)
        assert expander.expand(once) == once

    @pytest.mark.parametrize("text", ["", "   ", "no tokens"])
    def test_text_without_tokens_is_returned_unchanged(self, expander, text):
        assert expander.expand(text) == text

    def test_run_variables_expand_after_builtins(self, expander):
        assert expander.expand("%count% on %date%", {"count": 3}) == "3 on 2024-03-05"

    def test_custom_variables(self, logger):
        expander = TemplateExpander(variable_provider=lambda: {"dept": "sales"}, clock=FakeClock(), logger=logger)
        assert expander.expand("%dept%_%date%") == "sales_2024-03-05"


class TestCustomVariableCache:
    def test_provider_is_read_once_until_reload(self, logger):
        provider = CountingProvider({"env": "dev"})
        expander = TemplateExpander(variable_provider=provider, clock=FakeClock(), logger=logger)

        assert expander.expand("%env%") == "dev"
        provider.values["env"] = "prod"
        assert expander.expand("%env%") == "dev"
        assert provider.calls == 1

        expander.reload()

        assert expander.expand("%env%") == "prod"
        assert provider.calls == 2

    def test_provider_failure_is_logged_and_tokens_stay(self, logger):
        def broken():
            raise OSError("settings locked")

        expander = TemplateExpander(variable_provider=broken, clock=FakeClock(), logger=logger)

        assert expander.expand("%env%") == "%env%"
        assert any("settings locked" in e.message for e in logger.get_all_logs())

    def test_settings_provider_reads_custom_variables(self, tmp_path):
        manager = SettingsManager(tmp_path / "settings.json")
        manager.save(AppSettings(custom_variables={"share": r"\\srv\drop"}))
        expander = TemplateExpander(variable_provider=SettingsVariableProvider(manager), clock=FakeClock())

        assert expander.expand("%share%\\%date%") == "\\\\srv\\drop\\2024-03-05"


class TestExpandAction:
    def test_only_template_fields_change_and_originals_are_returned(self, expander):
        copy = FileCopyAction(source_path="in/%date%.csv", destination_path="out/", overwrite=True)

        originals = expander.expand_action(copy)

        assert copy.source_path == "in/2024-03-05.csv"
        assert copy.destination_path == "out/"
        assert originals == {"source_path": "in/%date%.csv"}

    def test_kind_without_template_fields_is_untouched(self, expander):
        click = MouseClickAction(x=1, y=2)
        assert expander.expand_action(click) == {}
        assert click == MouseClickAction(x=1, y=2)


def test_settings_round_trip(tmp_path):
    manager = SettingsManager(tmp_path / "settings.json")
    settings = AppSettings(
        custom_variables={"a": "1"},
        default_webhook_url="https://chat.example.com/hook",
        scheduler_check_interval_seconds=5.0,
        max_history=20,
        log_max_entries=50,
    )
    manager.save(settings)
    assert manager.load() == settings


def test_corrupt_settings_fall_back_to_defaults_and_keep_backup(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{broken", encoding="utf-8")

    settings = SettingsManager(path).load()

    assert settings == AppSettings()
    assert (tmp_path / "settings.bak").read_text(encoding="utf-8") == "{broken"
    assert not path.exists()


def test_settings_ignore_non_dict_variables(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"custom_variables": ["x"], "max_history": 7}), encoding="utf-8")

    settings = SettingsManager(path).load()

    assert settings.custom_variables == {}
    assert settings.max_history == 7
