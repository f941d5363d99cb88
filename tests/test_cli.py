from __future__ import annotations
import json
import logging
from unittest.mock import patch

from eth_metrics_exporter.cli import build_parser, main

_log = logging.getLogger("test-cli")


def test_serve_arguments():
    args = build_parser().parse_args([
        "serve",
        "--consensus-url", "http://localhost:5052",
        "--disk-dir", "/data/beacon",
        "--disk-dir", "/data/validator",
        "--port", "9100",
    ])
    assert args.cmd == "serve"
    assert args.consensus_url == "http://localhost:5052"
    assert args.disk_directories == ["/data/beacon", "/data/validator"]
    assert args.port == 9100
    assert args.namespace is None


@patch("eth_metrics_exporter.cli.setup_logging", return_value=_log)
def test_disk_usage_prints_json(mock_logging, tmp_path, capsys):
    (tmp_path / "db").write_bytes(b"x" * 64)
    missing = tmp_path / "missing"

    assert main(["disk-usage", str(tmp_path / "db"), str(missing)]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output == [{"path": str(tmp_path / "db"), "size_bytes": 64}]


@patch("eth_metrics_exporter.cli.setup_logging", return_value=_log)
def test_disk_usage_writes_output_file(mock_logging, tmp_path):
    (tmp_path / "db").write_bytes(b"x" * 3)
    out = tmp_path / "usage.json"

    assert main(["disk-usage", str(tmp_path / "db"), "--output", str(out)]) == 0
    assert json.loads(out.read_text())[0]["size_bytes"] == 3


@patch("eth_metrics_exporter.cli.setup_logging", return_value=_log)
def test_serve_rejects_bad_config(mock_logging, tmp_path):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"port": -1}))
    assert main(["serve", "--config", str(config)]) == 1


@patch("eth_metrics_exporter.daemon.ExporterDaemon")
@patch("eth_metrics_exporter.cli.setup_logging", return_value=_log)
def test_serve_starts_daemon(mock_logging, mock_daemon):
    assert main(["serve", "--consensus-url", "http://localhost:5052", "--port", "9191"]) == 0

    config = mock_daemon.call_args[0][0]
    assert config.consensus_url == "http://localhost:5052"
    assert config.port == 9191
    mock_daemon.return_value.start.assert_called_once()
    mock_daemon.return_value.stop.assert_called_once()
