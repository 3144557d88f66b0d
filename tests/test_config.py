"""Tests for config.load_config."""

import config


def test_no_path_returns_defaults_copy():
    settings = config.load_config()
    assert settings == config.DEFAULTS
    settings["server"]["port"] = 1
    assert config.DEFAULTS["server"]["port"] != 1


def test_missing_file_falls_back(tmp_path):
    assert config.load_config(str(tmp_path / "nope.yaml")) == config.DEFAULTS


def test_yaml_overrides_merge_deeply(tmp_path):
    path = tmp_path / "portal.yaml"
    path.write_text(
        "server:\n"
        "  ws_port: 9002\n"
        "client:\n"
        "  panels:\n"
        "    system: {mode: websocket}\n"
    )
    settings = config.load_config(str(path))
    assert settings["server"]["ws_port"] == 9002
    assert settings["server"]["host"] == config.DEFAULTS["server"]["host"]
    assert settings["client"]["panels"] == {"system": {"mode": "websocket"}}
    assert config.DEFAULTS["client"]["panels"] == {}


def test_broken_or_non_mapping_yaml_ignored(tmp_path):
    broken = tmp_path / "broken.yaml"
    broken.write_text("server: [unclosed\n")
    assert config.load_config(str(broken)) == config.DEFAULTS

    listy = tmp_path / "list.yaml"
    listy.write_text("- a\n- b\n")
    assert config.load_config(str(listy)) == config.DEFAULTS


def test_every_panel_follows_a_known_channel():
    assert set(config.PANEL_TO_CHANNEL.values()) <= set(config.CHANNELS)
