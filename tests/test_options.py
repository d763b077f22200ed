"""Tests for session options and connect-option normalization."""

import pytest

from termsession.session import (
    HostContext, ProxyOptions, SessionOptions, SessionType, build_connect_options, load_profiles,
)


class TestSessionOptions:
    def test_from_dict_accepts_camel_case(self):
        options = SessionOptions.from_dict({
            "type": "remote",
            "host": "h",
            "username": "u",
            "privateKey": "KEY",
            "readyTimeout": 5,
            "keepaliveInterval": 10,
            "proxy": {"proxyIp": "1.2.3.4", "proxyPort": 1080, "proxyType": 4},
        })

        assert options.private_key == "KEY"
        assert options.ready_timeout == 5
        assert options.keepalive_interval == 10
        assert options.proxy == ProxyOptions(proxy_ip="1.2.3.4", proxy_port=1080, proxy_type="4")
        assert options.proxy.enabled

    def test_from_dict_ignores_unknown_keys(self):
        options = SessionOptions.from_dict({"type": "local", "name": "shell", "colour": "red"})

        assert options == SessionOptions(type="local")

    def test_options_are_immutable(self):
        options = SessionOptions(type="local")

        with pytest.raises(AttributeError):
            options.cols = 100

    @pytest.mark.parametrize("value, expected", [
        ("local", SessionType.LOCAL),
        ("remote", SessionType.REMOTE),
        ("telnet", None),
        (None, None),
    ])
    def test_session_type(self, value, expected):
        assert SessionOptions(type=value).session_type is expected

    def test_proxy_needs_ip_and_port(self):
        assert not ProxyOptions(proxy_ip="1.2.3.4").enabled
        assert not ProxyOptions(proxy_port=1080).enabled

    def test_load_profile_from_yaml(self, tmp_path):
        path = tmp_path / "web01.yaml"
        path.write_text(
            "type: remote\n"
            "host: 10.0.0.5\n"
            "port: 2222\n"
            "username: admin\n"
            "x11: true\n"
            "proxy:\n"
            "  proxyIp: 10.0.0.1\n"
            "  proxyPort: 1080\n"
        )

        options = SessionOptions.load(path)

        assert options.host == "10.0.0.5"
        assert options.port == 2222
        assert options.x11 is True
        assert options.proxy.proxy_ip == "10.0.0.1"

    def test_load_rejects_non_mapping(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ValueError):
            SessionOptions.load(path)

    def test_load_profiles_skips_unnamed_and_non_mapping(self, tmp_path):
        path = tmp_path / "sessions.yaml"
        path.write_text(
            "- just a string\n"
            "- name: web01\n"
            "  type: remote\n"
            "  host: 10.0.0.5\n"
            "- type: local\n"
            "- name: shell\n"
            "  type: local\n"
        )

        profiles = load_profiles(path)

        assert sorted(profiles) == ["shell", "web01"]
        assert profiles["web01"].host == "10.0.0.5"


class TestHostContext:
    def test_home_dir_follows_platform(self, linux_context, windows_context):
        assert linux_context.home_dir == "/home/alice"
        assert windows_context.home_dir == "C:\\Users\\alice"

    def test_empty_values_are_unknown(self):
        context = HostContext(environ={"SSH_AUTH_SOCK": "", "DISPLAY": ""}, platform="linux")

        assert context.agent_socket is None
        assert context.display is None


class TestBuildConnectOptions:
    @pytest.mark.parametrize("password", [None, ""])
    @pytest.mark.parametrize("passphrase", [None, ""])
    def test_empty_secrets_are_removed(self, linux_context, password, passphrase):
        options = SessionOptions(
            type="remote", host="h", username="u", password=password, passphrase=passphrase,
        )

        opts = build_connect_options(options, linux_context)

        assert "password" not in opts
        assert "passphrase" not in opts

    def test_secrets_are_kept_when_set(self, linux_context):
        options = SessionOptions(
            type="remote", host="h", username="u", password="p", private_key="KEY", passphrase="pp",
        )

        opts = build_connect_options(options, linux_context)

        assert opts["password"] == "p"
        assert opts["private_key"] == "KEY"
        assert opts["passphrase"] == "pp"

    @pytest.mark.parametrize("x11, expected", [
        (True, True),
        (1, True),
        ("yes", True),
        (False, False),
        (0, False),
        ("", False),
        (None, False),
    ])
    def test_x11_is_always_bool(self, linux_context, x11, expected):
        opts = build_connect_options(SessionOptions(type="remote", host="h", x11=x11), linux_context)

        assert opts["x11"] is expected

    def test_keyboard_interactive_always_on(self, linux_context):
        opts = build_connect_options(SessionOptions(type="remote", host="h"), linux_context)

        assert opts["try_keyboard_interactive"] is True

    def test_agent_socket_from_context(self):
        context = HostContext(environ={"SSH_AUTH_SOCK": "/tmp/agent.sock"}, platform="linux")

        opts = build_connect_options(SessionOptions(type="remote", host="h"), context)

        assert opts["agent"] == "/tmp/agent.sock"

    def test_no_agent_key_without_socket(self, linux_context):
        opts = build_connect_options(SessionOptions(type="remote", host="h"), linux_context)

        assert "agent" not in opts

    def test_timeouts_fall_back_to_defaults(self, linux_context):
        options = SessionOptions(type="remote", host="h", keepalive_interval=15)

        opts = build_connect_options(options, linux_context, ready_timeout=20.0, keepalive_interval=0)

        assert opts["ready_timeout"] == 20.0
        assert opts["keepalive_interval"] == 15

    def test_no_proxy_fields_without_proxy(self, linux_context):
        opts = build_connect_options(SessionOptions(type="remote", host="h", port=22), linux_context)

        assert opts["host"] == "h"
        assert opts["port"] == 22
        assert "sock" not in opts
        assert not any(key.startswith("proxy") for key in opts)
