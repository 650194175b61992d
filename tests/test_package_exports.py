"""Tests for top-level package lazy exports."""

from __future__ import annotations

import unittest

import prompt_relay


class PackageExportTests(unittest.TestCase):
    """Ensure __getattr__ and exported symbols behave as expected."""

    def test_lazy_exports_resolve_known_symbols(self) -> None:
        self.assertTrue(callable(prompt_relay.load_config))
        self.assertTrue(callable(prompt_relay.ensure_config_dir))
        for name in prompt_relay.__all__:
            self.assertIsNotNone(getattr(prompt_relay, name), name)

    def test_exception_hierarchy(self) -> None:
        for name in (
            "ConfigValidationError",
            "ImageValidationError",
            "LifecycleError",
            "TerminalTransportError",
        ):
            self.assertTrue(issubclass(getattr(prompt_relay, name), prompt_relay.PromptRelayError))

    def test_unknown_symbol_raises_attribute_error(self) -> None:
        with self.assertRaises(AttributeError):
            getattr(prompt_relay, "THIS_DOES_NOT_EXIST")


if __name__ == "__main__":
    unittest.main()
