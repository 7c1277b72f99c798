# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Tests for main.py module.
Covers argument parsing, command dispatch and exit status.
"""

import io
import logging
import os
from unittest.mock import Mock, patch

import pytest

from gitbuilder.exceptions import BuildRuntimeError, ConfigurationError
from gitbuilder.main import build_parser, main, run_git_receive, run_server, setup_logging

HOOK_ENV = {
    "GIT_HOME": "/home/git",
    "REPOSITORY": "demo.git",
    "SSH_ORIGINAL_COMMAND": "git-receive-pack 'demo.git'",
}


class TestParser:
    """Tests for the command line parser."""

    def test_server(self):
        """Test the server subcommand parses."""
        assert build_parser().parse_args(["server"]).command == "server"

    def test_git_receive(self):
        """Test the git-receive subcommand parses."""
        assert build_parser().parse_args(["git-receive"]).command == "git-receive"

    def test_command_required(self):
        """Test a subcommand is required."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestSetupLogging:
    """Tests for logging setup."""

    def test_returns_builder_logger(self):
        """Test setup_logging returns the package logger."""
        logger = setup_logging(debug=True)

        assert logger.name == "gitbuilder"
        assert logging.getLogger("paramiko").level == logging.WARNING


class TestRunServer:
    """Tests for the server entry point."""

    @patch("gitbuilder.main.SSHServer")
    @patch("gitbuilder.main.GitReceiver")
    @patch("gitbuilder.main.load_authorized_key")
    @patch("gitbuilder.main.load_host_keys")
    def test_wires_components(self, mock_host_keys, mock_authorized_key, mock_receiver, mock_server):
        """Test the server is wired up and shut down on interrupt."""
        config = Mock()
        mock_authorized_key.return_value = None
        mock_server.return_value.serve_forever.side_effect = KeyboardInterrupt

        assert run_server(config, logging.getLogger("test")) == 0

        assert mock_host_keys.call_args.args == (config.HOST_KEY_TYPES, config.HOST_KEY_PATTERN)
        mock_authorized_key.assert_called_once()
        mock_server.return_value.shutdown.assert_called_once()


class TestRunGitReceive:
    """Tests for the hook entry point."""

    @patch("gitbuilder.main.Orchestrator")
    @patch("gitbuilder.main.HttpObjectStorage")
    @patch("gitbuilder.main.KubernetesScheduler")
    def test_runs_orchestrator_on_stdin(self, mock_scheduler, mock_storage, mock_orchestrator):
        """Test the hook entry feeds stdin to the orchestrator."""
        config = Mock()
        stdin = io.StringIO("a b refs/heads/master\n")

        with patch.dict(os.environ, HOOK_ENV, clear=True):
            assert run_git_receive(config, logging.getLogger("test"), stdin=stdin) == 0

        context = mock_orchestrator.call_args.args[1]
        assert context.repository == "demo.git"
        assert context.is_receive
        mock_orchestrator.return_value.run.assert_called_once_with(stdin)
        mock_storage.return_value.__exit__.assert_called_once()


class TestMain:
    """Tests for main()."""

    @patch("gitbuilder.main.get_config")
    def test_configuration_error(self, mock_get_config, capsys):
        """Test a configuration error exits with status 1."""
        mock_get_config.side_effect = ConfigurationError("Invalid BUILDER_SSH_HOST_PORT")

        assert main(["server"]) == 1
        assert "❌ ERROR: Invalid BUILDER_SSH_HOST_PORT" in capsys.readouterr().err

    @patch("gitbuilder.main.run_server")
    @patch("gitbuilder.main.get_config")
    def test_server_dispatch(self, mock_get_config, mock_run_server):
        """Test the server subcommand starts the server."""
        mock_get_config.return_value.DEBUG_MODE = False
        mock_run_server.return_value = 0

        assert main(["server"]) == 0
        mock_run_server.assert_called_once()

    @patch("gitbuilder.main.run_git_receive")
    @patch("gitbuilder.main.get_config")
    def test_build_failure(self, mock_get_config, mock_run_git_receive, capsys):
        """Test a failed build exits with status 1."""
        mock_get_config.return_value.DEBUG_MODE = False
        mock_run_git_receive.side_effect = BuildRuntimeError("Build job slugbuild-demo failed")

        assert main(["git-receive"]) == 1
        assert "❌ ERROR: Build job slugbuild-demo failed" in capsys.readouterr().err

    @patch("gitbuilder.main.run_git_receive")
    @patch("gitbuilder.main.get_config")
    def test_unexpected_error(self, mock_get_config, mock_run_git_receive, capsys):
        """Test an unexpected exception exits with status 1."""
        mock_get_config.return_value.DEBUG_MODE = False
        mock_run_git_receive.side_effect = RuntimeError("boom")

        assert main(["git-receive"]) == 1
        assert "❌ FATAL ERROR: boom" in capsys.readouterr().err

    @patch("gitbuilder.main.get_config")
    def test_missing_hook_environment(self, mock_get_config, capsys):
        """Test a hook run without its environment exits with status 1."""
        mock_get_config.return_value.DEBUG_MODE = False

        with patch.dict(os.environ, {}, clear=True):
            assert main(["git-receive"]) == 1
        assert "GIT_HOME and REPOSITORY are required" in capsys.readouterr().err
