"""
Tests for the diagnostics sink - level filtering and line format.
"""
import io
import re

import pytest

from logcollector.diagnostics import Diagnostics, parse_level

LINE = re.compile(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] (.+)$")


def make(level, use_colors=False):
    out, err = io.StringIO(), io.StringIO()
    return Diagnostics(level=level, use_colors=use_colors, out=out, err=err), out, err


class TestParseLevel:

    def test_names(self):
        assert parse_level('none') == -1
        assert parse_level('ERROR') == 0
        assert parse_level(' trace ') == 4

    def test_unknown(self):
        with pytest.raises(ValueError):
            parse_level('loud')


class TestDiagnostics:

    def test_line_format(self):
        diagnostics, out, err = make('info')
        diagnostics.module('UDPServer').info("Listening")
        match = LINE.match(out.getvalue().rstrip('\n'))
        assert match
        assert match.group(1) == "INFO  UDPServer: Listening"
        assert err.getvalue() == ''

    def test_errors_go_to_stderr(self):
        diagnostics, out, err = make('warn')
        log = diagnostics.module('MQTT')
        log.error("refused")
        log.warn("reconnecting")
        assert "ERROR MQTT: refused" in err.getvalue()
        assert "WARN  MQTT: reconnecting" in err.getvalue()
        assert out.getvalue() == ''

    def test_level_filtering(self):
        diagnostics, out, err = make('info')
        log = diagnostics.module('Dispatcher')
        log.debug("hidden")
        log.trace("hidden")
        log.info("shown")
        assert "hidden" not in out.getvalue()
        assert "shown" in out.getvalue()

    def test_none_prints_only_success_and_raw(self):
        diagnostics, out, err = make('none')
        log = diagnostics.module('UDPServer')
        log.error("hidden")
        log.info("hidden")
        log.success("QSO logged from WSJT-X: W1AW on 20m")
        log.raw("banner")
        assert err.getvalue() == ''
        assert "hidden" not in out.getvalue()
        assert "✓ UDPServer: QSO logged from WSJT-X: W1AW on 20m" in out.getvalue()
        assert out.getvalue().endswith("banner\n")

    def test_levels_are_per_instance(self):
        quiet, quiet_out, _ = make('error')
        chatty, chatty_out, _ = make('trace')
        quiet.module('A').debug("message")
        chatty.module('A').debug("message")
        assert quiet_out.getvalue() == ''
        assert "message" in chatty_out.getvalue()

    def test_set_level(self):
        diagnostics, out, _ = make('none')
        diagnostics.set_level('debug')
        assert diagnostics.level_name == 'debug'
        diagnostics.module('A').debug("now shown")
        assert "now shown" in out.getvalue()

    def test_colors(self):
        diagnostics, out, _ = make('info', use_colors=True)
        diagnostics.module('A').info("coloured")
        assert '\x1b[36mINFO \x1b[0m' in out.getvalue()
        assert '\x1b[34mA\x1b[0m' in out.getvalue()
