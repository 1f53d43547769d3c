import pytest

from anonchatd import cli


def test_first_run_writes_default_config(tmp_path, capsys) -> None:
    cfg_path = tmp_path / "home" / "anonchatd.toml"

    with pytest.raises(SystemExit) as exc:
        cli.main(["--config", str(cfg_path)])

    assert exc.value.code == 0
    assert cfg_path.exists()
    assert "Created default anonchatd config" in capsys.readouterr().err


def test_default_config_parses_to_defaults(tmp_path) -> None:
    cfg_path = tmp_path / "anonchatd.toml"
    cfg_path.write_text(cli.DEFAULT_CONFIG, encoding="utf-8")

    args = cli._build_arg_parser().parse_args(["--config", str(cfg_path)])
    cfg = cli.build_config(args)

    assert cfg.port == 8080
    assert cfg.endpoint_path == "/api/socket"
    assert cfg.history_limit == 200
    assert cfg.log_file is None
    assert cfg.config_path == str(cfg_path)


def test_cli_flags_override_file(tmp_path) -> None:
    cfg_path = tmp_path / "anonchatd.toml"
    cfg_path.write_text(cli.DEFAULT_CONFIG, encoding="utf-8")

    args = cli._build_arg_parser().parse_args(
        [
            "--config", str(cfg_path),
            "--host", "0.0.0.0",
            "--port", "9100",
            "--endpoint", "/chat",
            "--history-limit", "25",
            "--ping-interval", "0",
            "--log-level", "DEBUG",
            "--log-file", "",
        ]
    )
    cfg = cli.build_config(args)

    assert (cfg.host, cfg.port, cfg.endpoint_path) == ("0.0.0.0", 9100, "/chat")
    assert cfg.history_limit == 25
    assert cfg.ping_interval_s == 0.0
    assert cfg.log_level == "DEBUG"
    assert cfg.log_file is None


def test_invalid_config_exits_with_error(tmp_path, capsys) -> None:
    cfg_path = tmp_path / "anonchatd.toml"
    cfg_path.write_text("[hub]\nhistory_limit = 0\n", encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        cli.main(["--config", str(cfg_path)])

    assert exc.value.code == 2
    assert "invalid configuration" in capsys.readouterr().err
