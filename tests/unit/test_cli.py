"""Tests for the command line interface."""

from __future__ import annotations

import socket

from click.testing import CliRunner

from apphost.cli import main


class TestCli:
    """Tests for CLI commands that do not start a server."""

    def test_help(self):
        """Top-level help lists the commands."""
        result = CliRunner().invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "serve" in result.output
        assert "health" in result.output

    def test_serve_help(self):
        """serve documents its options."""
        result = CliRunner().invoke(main, ["serve", "--help"])

        assert result.exit_code == 0
        assert "--cors-origin" in result.output

    def test_health_unreachable(self):
        """Health check fails when nothing is listening."""
        sock = socket.socket()
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()

        result = CliRunner().invoke(main, ["health", "--url", f"http://127.0.0.1:{port}"])

        assert result.exit_code == 1
