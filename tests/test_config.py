import pytest

from speedtest_exporter.config import (
    ConfigError,
    ExporterConfig,
    build_config,
    load_config_file,
    parse_duration,
    parse_listen_addr,
)


def test_defaults_match_command_line_defaults():
    config = build_config()
    assert config == ExporterConfig()
    assert config.listen_addr == ":8080"
    assert config.interval_s == 30.0
    assert (config.buckets_start, config.buckets_width, config.buckets_count) == (5, 5, 60)
    assert config.binary == "fast-cli"


@pytest.mark.parametrize(
    "value, seconds",
    [
        ("30s", 30.0),
        ("1m", 60.0),
        ("1m30s", 90.0),
        ("1h", 3600.0),
        ("500ms", 0.5),
        ("1.5s", 1.5),
        ("45", 45.0),
        (20, 20.0),
        (17.5, 17.5),
    ],
)
def test_parse_duration(value, seconds):
    assert parse_duration(value) == pytest.approx(seconds)


@pytest.mark.parametrize("value", ["", "s", "10x", "1m30", "abc", True, None, [1]])
def test_parse_duration_rejects_garbage(value):
    with pytest.raises(ConfigError):
        parse_duration(value)


@pytest.mark.parametrize(
    "addr, expected",
    [
        (":8080", ("0.0.0.0", 8080)),
        ("127.0.0.1:9100", ("127.0.0.1", 9100)),
        ("localhost:0", ("localhost", 0)),
        ("[::1]:8080", ("::1", 8080)),
    ],
)
def test_parse_listen_addr(addr, expected):
    assert parse_listen_addr(addr) == expected


@pytest.mark.parametrize("addr", ["8080", "host:", "host:http", ":70000", "::1:8080"])
def test_parse_listen_addr_rejects_invalid(addr):
    with pytest.raises(ConfigError):
        parse_listen_addr(addr)


def test_interval_below_minimum_is_rejected():
    with pytest.raises(ConfigError) as exc:
        build_config({"interval_s": "14s"})
    assert "must be >= 15s" in str(exc.value)


def test_minimum_interval_is_accepted():
    assert build_config({"interval_s": "15s"}).interval_s == 15.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"buckets_width": 0},
        {"buckets_count": 0},
        {"buckets_start": "five"},
        {"buckets_count": 2.5},
        {"log_level": "LOUD"},
        {"listen_addr": "nope"},
        {"binary": ""},
    ],
)
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(ConfigError):
        build_config(overrides)


def test_unknown_override_is_rejected():
    with pytest.raises(ConfigError):
        build_config({"colour": "blue"})


def test_none_overrides_are_ignored():
    assert build_config({"listen_addr": None, "interval_s": None}) == ExporterConfig()


def test_yaml_file_then_flags_precedence(tmp_path):
    path = tmp_path / "exporter.yaml"
    path.write_text("addr: \"127.0.0.1:9200\"\ninterval: 1m\nwidth: 10\nbinary: /opt/fast-cli\n")

    config = build_config({"buckets_width": 20}, config_path=str(path))

    assert config.listen_addr == "127.0.0.1:9200"
    assert config.interval_s == 60.0
    assert config.buckets_width == 20
    assert config.buckets_start == 5
    assert config.binary == "/opt/fast-cli"


def test_empty_yaml_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config_file(str(path)) == {}


@pytest.mark.parametrize(
    "content",
    ["- just\n- a list\n", "addr: [unclosed\n", "interval: 30s\nretries: 3\n"],
)
def test_bad_yaml_files(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError):
        build_config(config_path=str(path))


def test_missing_yaml_file(tmp_path):
    with pytest.raises(ConfigError):
        build_config(config_path=str(tmp_path / "missing.yaml"))


def test_bind_address_property():
    assert ExporterConfig(listen_addr="127.0.0.1:1234").bind_address == ("127.0.0.1", 1234)


@pytest.mark.parametrize("value", ["nan", "inf", "-inf", "Infinity", float("nan"), float("inf")])
def test_non_finite_durations_are_rejected(value):
    with pytest.raises(ConfigError):
        parse_duration(value)
    with pytest.raises(ConfigError):
        build_config({"interval_s": value})


@pytest.mark.parametrize("literal", [".nan", ".inf"])
def test_non_finite_yaml_interval_is_rejected(tmp_path, literal):
    path = tmp_path / "exporter.yaml"
    path.write_text(f"interval: {literal}\n")
    with pytest.raises(ConfigError):
        build_config(config_path=str(path))


def test_validate_rejects_non_finite_interval():
    with pytest.raises(ConfigError):
        ExporterConfig(interval_s=float("nan")).validate()
