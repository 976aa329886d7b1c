"""Tests for the command line entry point."""

import json

import pytest

from compute_market.cli import build_parser, main


class TestParser:
    """Tests for argument parsing."""

    def test_proposal_requires_dao(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["proposal"])

    def test_monitor_options(self):
        args = build_parser().parse_args(["--network", "sepolia", "monitor", "--once", "--interval", "30"])
        assert args.network == "sepolia"
        assert args.command == "monitor"
        assert args.once
        assert args.interval == 30


class TestMain:
    """Tests for error reporting."""

    def test_unknown_network_prints_error(self, capsys):
        assert main(["--network", "goerli", "listings"]) == 1
        payload = json.loads(capsys.readouterr().out)
        assert payload["error_type"] == "InvalidArgument"
        assert payload["error_code"] == 400
        assert "goerli" in payload["error_message"]
