# test_startup.py
import json

import startup


def _config(tmp_path, data=None):
    path = tmp_path / "c.json"
    if data is not None:
        path.write_text(json.dumps(data), encoding='utf-8')
    return str(path)


def test_defaults_to_gui_mode(tmp_path):
    ctx = startup.init_startup(["--config", _config(tmp_path)])
    assert ctx.mode == "gui"
    assert ctx.server == "pool.ntp.org"
    assert ctx.timeout_ms == 500
    assert ctx.debug is False


def test_once_selects_cli_mode(tmp_path):
    ctx = startup.init_startup(["--once", "--config", _config(tmp_path)])
    assert ctx.mode == "cli"


def test_arguments_override_config(tmp_path):
    path = _config(tmp_path, {'ntp': {'server': 'time.google.com', 'timeout_ms': 800}})
    ctx = startup.init_startup(["--config", path, "--server", "ntp.nict.jp", "--timeout-ms", "300", "--debug"])
    assert ctx.server == "ntp.nict.jp"
    assert ctx.timeout_ms == 300
    assert ctx.debug is True


def test_config_values_used_without_arguments(tmp_path):
    path = _config(tmp_path, {'ntp': {'server': 'time.google.com', 'timeout_ms': 800}, 'debug': True})
    ctx = startup.init_startup(["--config", path])
    assert ctx.server == "time.google.com"
    assert ctx.timeout_ms == 800
    assert ctx.debug is True


def test_invalid_timeout_argument_is_ignored(tmp_path):
    ctx = startup.init_startup(["--config", _config(tmp_path), "--timeout-ms", "0"])
    assert ctx.timeout_ms == 500


def test_unknown_arguments_are_kept_out():
    ns = startup.parse_args(["--once", "--something-else"])
    assert ns.once is True
