"""Tests for the output layer.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb colour disabling
- stdout vs stderr discipline
- Quiet and verbose rules
- format_response and print_table in the three formats
- Global instance management
"""

from __future__ import annotations

import json

import pytest

from offcache import output as output_module
from offcache.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True)
def _reset_global_output():
    """Ensure the global output instance is reset between tests."""
    reset_output()
    yield
    reset_output()


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("offcache.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("offcache.output._is_tty", lambda: True)


# ------------------------------------------------------------------ #
# Format resolution and colour
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager().format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager().format == OutputFormat.RICH

    def test_no_color_flag_forces_plain(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        assert OutputManager(no_color=True).format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# Stream discipline
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    def test_print_data_goes_to_stdout(self, capfd, non_tty):
        OutputManager(no_color=True).print_data("body")
        out, err = capfd.readouterr()
        assert out == "body\n"
        assert err == ""

    @pytest.mark.parametrize("method", ["info", "success", "warning", "error"])
    def test_diagnostics_go_to_stderr(self, capfd, non_tty, method):
        getattr(OutputManager(no_color=True), method)("Installing")
        out, err = capfd.readouterr()
        assert out == ""
        assert "Installing" in err

    def test_diagnostic_prefixes(self, capfd, non_tty):
        manager = OutputManager(no_color=True)
        manager.warning("slow")
        manager.error("down")
        _, err = capfd.readouterr()
        assert "Warning: slow" in err
        assert "Error: down" in err


class TestQuietAndVerbose:
    def test_quiet_suppresses_info_and_success(self, capfd, non_tty):
        manager = OutputManager(no_color=True, quiet=True)
        manager.info("hidden")
        manager.success("hidden")
        _, err = capfd.readouterr()
        assert err == ""

    def test_quiet_keeps_warnings_and_errors(self, capfd, non_tty):
        manager = OutputManager(no_color=True, quiet=True)
        manager.warning("w")
        manager.error("e")
        _, err = capfd.readouterr()
        assert "w" in err and "e" in err

    def test_debug_hidden_by_default(self, capfd, non_tty):
        OutputManager(no_color=True).debug("cache hit")
        _, err = capfd.readouterr()
        assert err == ""

    def test_debug_shown_with_verbose(self, capfd, non_tty):
        OutputManager(no_color=True, verbose=True).debug("cache hit")
        _, err = capfd.readouterr()
        assert "[debug] cache hit" in err


# ------------------------------------------------------------------ #
# Structured data
# ------------------------------------------------------------------ #


class TestFormatResponse:
    def test_json_dict(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response({"type": "CACHE_SIZE", "size": 3})
        out, _ = capfd.readouterr()
        assert json.loads(out) == {"type": "CACHE_SIZE", "size": 3}

    def test_json_string_passthrough(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response("not json")
        out, _ = capfd.readouterr()
        assert out == "not json\n"

    def test_plain_dict_as_key_value(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response({"type": "CACHE_SIZE", "size": 3})
        out, _ = capfd.readouterr()
        assert out.splitlines() == ["type\tCACHE_SIZE", "size\t3"]

    def test_plain_list_of_dicts(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response([{"a": 1, "b": 2}])
        out, _ = capfd.readouterr()
        assert out == "1\t2\n"

    def test_rich_dict_produces_output(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).format_response({"size": 3})
        out, _ = capfd.readouterr()
        assert "size" in out


class TestPrintTable:
    def test_json_mode(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).print_table(
            ["namespace", "entries"], [["app-static-v2", "4"]]
        )
        out, _ = capfd.readouterr()
        assert json.loads(out) == [{"namespace": "app-static-v2", "entries": "4"}]

    def test_plain_mode(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).print_table(
            ["namespace", "entries"], [["app-static-v2", "4"]], title="ignored"
        )
        out, _ = capfd.readouterr()
        assert out.splitlines() == ["namespace\tentries", "app-static-v2\t4"]

    def test_rich_mode(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).print_table(
            ["namespace"], [["app-static-v2"]], title="Namespaces"
        )
        out, _ = capfd.readouterr()
        assert "app-static-v2" in out


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_get_output_creates_default(self):
        assert isinstance(get_output(), OutputManager)

    def test_set_then_reset(self):
        custom = OutputManager(quiet=True)
        set_output(custom)
        assert get_output() is custom
        reset_output()
        assert get_output() is not custom

    def test_convenience_functions_use_global(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True))
        output_module.info("i")
        output_module.debug("d")
        output_module.print_data("data")
        out, err = capfd.readouterr()
        assert out == "data\n"
        assert "i" in err and "[debug] d" in err
