"""Tests for config module."""

import pytest

from viewstream.config import Config, get_config, reload_config
from viewstream.config import defaults
from viewstream.store.view import View


class EchoView(View[str, str]):
    def get_initial_state(self):
        return ""

    def get_next_state(self, current, command):
        return command


class TestConfig:
    def test_defaults(self, tmp_path):
        config = Config(search_from=tmp_path)
        assert config.SUBSCRIBER_ERROR_POLICY == defaults.SUBSCRIBER_ERROR_POLICY
        assert config.SLOW_REDUCTION_WARNING_MS == defaults.SLOW_REDUCTION_WARNING_MS
        assert config.source is None
        assert config.validate() == []

    def test_user_config_overrides(self, tmp_path):
        (tmp_path / "viewstream_config.py").write_text(
            'SUBSCRIBER_ERROR_POLICY = "propagate"\n'
            "SLOW_REDUCTION_WARNING_MS = 0\n"
            "UNRELATED = 1\n"
        )
        config = Config(search_from=tmp_path)

        assert config.SUBSCRIBER_ERROR_POLICY == "propagate"
        assert config.SLOW_REDUCTION_WARNING_MS == 0
        assert config.get("UNRELATED") is None
        assert config.source == tmp_path / "viewstream_config.py"

    def test_found_in_parent_directory(self, tmp_path):
        (tmp_path / "viewstream_config.py").write_text("SLOW_REDUCTION_WARNING_MS = 5\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        config = Config(search_from=nested)
        assert config.SLOW_REDUCTION_WARNING_MS == 5

    def test_validate_reports_problems(self, tmp_path):
        (tmp_path / "viewstream_config.py").write_text(
            'SUBSCRIBER_ERROR_POLICY = "swallow"\n'
            "SLOW_REDUCTION_WARNING_MS = -1\n"
        )
        config = Config(search_from=tmp_path)

        errors = config.validate()
        assert len(errors) == 2
        assert "SUBSCRIBER_ERROR_POLICY" in errors[0]

    def test_get_with_default(self, tmp_path):
        config = Config(search_from=tmp_path)
        assert config.get("MISSING", 42) == 42

    def test_global_instance(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = reload_config()
        assert get_config() is config

        (tmp_path / "viewstream_config.py").write_text('SUBSCRIBER_ERROR_POLICY = "propagate"\n')
        assert get_config().SUBSCRIBER_ERROR_POLICY == defaults.SUBSCRIBER_ERROR_POLICY
        assert reload_config().SUBSCRIBER_ERROR_POLICY == "propagate"

        # Nodes pick up the active configuration
        assert EchoView().subscriber_error_policy == "propagate"
        assert EchoView(subscriber_error_policy="isolate").subscriber_error_policy == "isolate"


@pytest.fixture(autouse=True)
def restore_config():
    yield
    reload_config()
