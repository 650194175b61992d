"""Tests for CLI entrypoint wiring."""

from __future__ import annotations

import io
from pathlib import Path
import unittest
from unittest.mock import patch

from prompt_relay.__main__ import main


class MainEntrypointTests(unittest.TestCase):
    """Validate top-level main() behavior."""

    def test_main_ensures_config_and_runs_app(self) -> None:
        with patch("prompt_relay.__main__.ensure_config_dir") as ensure_mock, patch(
            "prompt_relay.__main__.PromptRelayApp"
        ) as app_cls_mock:
            app_instance = app_cls_mock.return_value
            main([])
            ensure_mock.assert_called_once()
            app_cls_mock.assert_called_once_with(config_path=None, diagnostics_path=None)
            app_instance.run.assert_called_once()

    def test_paths_are_passed_to_app(self) -> None:
        with patch("prompt_relay.__main__.ensure_config_dir"), patch(
            "prompt_relay.__main__.PromptRelayApp"
        ) as app_cls_mock:
            main(["--config", "/tmp/relay.toml", "--diagnostics", "/tmp/problems.json"])
            app_cls_mock.assert_called_once_with(
                config_path=Path("/tmp/relay.toml"),
                diagnostics_path=Path("/tmp/problems.json"),
            )

    def test_version_flag_prints_and_exits(self) -> None:
        with patch("prompt_relay.__main__.PromptRelayApp") as app_cls_mock, patch(
            "sys.stdout", new_callable=io.StringIO
        ) as stdout:
            main(["--version"])
        self.assertTrue(stdout.getvalue().startswith("promptrelay "))
        app_cls_mock.assert_not_called()


if __name__ == "__main__":
    unittest.main()
