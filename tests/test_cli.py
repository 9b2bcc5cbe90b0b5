from __future__ import annotations

import functools
import json

from reactor_client import cli
from reactor_client.app import ClientConfig


def test_parser_defaults():
    args = cli.build_parser().parse_args([])
    assert args.log_level == "INFO"
    assert args.host == "localhost"
    assert args.json is False


def test_main_returns_zero_even_when_sessions_fail(capsys):
    rc = cli.main(["--host", "127.0.0.1", "--grace-timeout", "0.2", "--cancel-timeout", "1.0", "--json", "--log-level", "CRITICAL"])

    assert rc == 0
    summary = json.loads(capsys.readouterr().out)
    assert isinstance(summary, list)
    for entry in summary:
        assert entry["name"].startswith("Client ")
        assert entry["status"] in {"completed", "failed", "cancelled"}


def test_json_summary_stays_parseable_when_servers_reply(tcp_server, udp_server, monkeypatch, capsys):
    tcp_a, tcp_b, udp = tcp_server(), tcp_server(), udp_server()
    monkeypatch.setattr(
        cli,
        "ClientConfig",
        functools.partial(ClientConfig, tcp_ports=(tcp_a.port, tcp_b.port), udp_port=udp.port, pacing_ms=10),
    )

    rc = cli.main(["--host", "127.0.0.1", "--json", "--log-level", "CRITICAL"])

    assert rc == 0
    captured = capsys.readouterr()
    summary = json.loads(captured.out)
    assert sorted(entry["name"] for entry in summary) == ["Client 1", "Client 2", "Client 3", "Client 4"]
    assert all(entry["status"] == "completed" for entry in summary)
    assert "ECHO:Client 1 - Log request: 0" in captured.err
