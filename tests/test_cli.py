import json

import pytest

from tdexa import cli


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    monkeypatch.setenv("LOCALAPPDATA", str(tmp_path))
    monkeypatch.setenv("APPDATA", str(tmp_path))
    return tmp_path


def test_default_state_path_under_home(home):
    path = cli.default_state_path()
    assert path.name == "state.json"
    assert str(path).startswith(str(home))


def test_get_state_missing_file_raises(tmp_path):
    with pytest.raises(cli.StateError, match="try 'config init'"):
        cli.get_state(tmp_path / "missing.json")


def test_set_then_get_round_trip(tmp_path):
    path = tmp_path / "sub" / "state.json"
    cli.set_state({"rpcserver": "localhost:9000"}, path)
    assert cli.get_state(path) == {"rpcserver": "localhost:9000"}


def test_set_state_merges_entries(tmp_path):
    path = tmp_path / "state.json"
    cli.set_state({"a": "1", "b": "2"}, path)
    cli.set_state({"b": "3", "c": "4"}, path)
    assert cli.get_state(path) == {"a": "1", "b": "3", "c": "4"}


def test_set_state_writes_json(tmp_path):
    path = tmp_path / "state.json"
    cli.set_state({"tls_mod": "4"}, path)
    assert json.loads(path.read_text()) == {"tls_mod": "4"}


def test_invalid_json_reads_as_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("not json")
    assert cli.get_state(path) == {}


def test_config_stores_defaults(home):
    assert cli.main(["config"]) == 0
    state = cli.get_state(cli.default_state_path())
    assert state == {"rpcserver": "localhost:9000", "tls_mod": "4"}


def test_config_with_flags(home):
    assert cli.main(["config", "--rpcserver", "example.com:1", "--tls_mod", "0"]) == 0
    state = cli.get_state(cli.default_state_path())
    assert state["rpcserver"] == "example.com:1"
    assert state["tls_mod"] == "0"


def test_config_set_prints_confirmation(home, capsys):
    assert cli.main(["config", "set", "rpcserver", "example.com:2"]) == 0
    assert capsys.readouterr().out == "rpcserver example.com:2 has been set\n"
    assert cli.get_state(cli.default_state_path())["rpcserver"] == "example.com:2"


def test_config_set_missing_value_fails(home, capsys):
    assert cli.main(["config", "set", "rpcserver"]) == 1
    assert "[tower] key and value are missing" in capsys.readouterr().err


def test_config_print_lists_entries(home, capsys):
    cli.main(["config"])
    capsys.readouterr()
    assert cli.main(["config", "print"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert "rpcserver: localhost:9000" in lines
    assert "tls_mod: 4" in lines


def test_config_print_without_state_fails(home, capsys):
    assert cli.main(["config", "print"]) == 1
    assert "get config state error" in capsys.readouterr().err