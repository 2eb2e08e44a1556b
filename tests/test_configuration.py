from __future__ import annotations

import io
import os
import pathlib
import tempfile
import textwrap
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

from pollm.catalogs import read_catalog
from pollm.cli import main, print_summary
from pollm.configuration import API_KEY_VARIABLES, load_config
from pollm.errors import ConfigError, ErrorRecord
from pollm.orchestrator import EXIT_CONFIG_ERROR, EXIT_OK, RunSummary
from pollm.prompts import DEFAULT_INSTRUCTION_TEMPLATE
from pollm.structures import JobState
from pollm.translator import JobOutcome

from .support import entry, write_po

VALID_CONFIG = """
[llm]
model = "gpt-4o-mini"
custom_prompt = "Keep placeholders."

[translation]
target_languages = ["fr", "de"]
input_pattern = "*.pot"
output_pattern = "{lang}/{name}.po"
batch_size = 10

[project]
context = "A budgeting app"
base_path = "locales"
skip_translated = true
"""


def _environ_without_keys() -> dict:
    return {key: value for key, value in os.environ.items() if key not in API_KEY_VARIABLES}


class ConfigurationTests(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = pathlib.Path(self._tmp.name)
        (self.root / "locales").mkdir()
        self.config_path = self.root / "pollm.toml"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, content: str) -> pathlib.Path:
        self.config_path.write_text(textwrap.dedent(content), encoding="utf-8")
        return self.config_path

    def test_valid_configuration_loads_with_defaults(self) -> None:
        config = load_config(self._write(VALID_CONFIG), environ={})

        self.assertEqual(config.translation.target_languages, ["fr", "de"])
        self.assertEqual(config.translation.max_attempts, 3)
        self.assertEqual(config.translation.retry_backoff, [1.0, 4.0, 9.0])
        self.assertEqual(config.llm.system_prompt, DEFAULT_INSTRUCTION_TEMPLATE)
        self.assertIsNone(config.llm.api_key)
        self.assertEqual(config.base_dir, self.root.resolve() / "locales")

        context = config.project_context()
        self.assertEqual(context.batch_size, 10)
        self.assertTrue(context.skip_translated)
        self.assertEqual(context.custom_prompt, "Keep placeholders.")

    def test_api_key_comes_from_environment(self) -> None:
        config = load_config(self._write(VALID_CONFIG), environ={"OPENAI_API_KEY": "from-env"})
        self.assertEqual(config.llm.api_key, "from-env")

    def test_api_key_comes_from_dotenv_file(self) -> None:
        (self.root / ".env").write_text("POLLM_API_KEY=from-dotenv\n", encoding="utf-8")
        config = load_config(self._write(VALID_CONFIG), environ={})
        self.assertEqual(config.llm.api_key, "from-dotenv")

    def test_zero_batch_size_is_rejected(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            load_config(self._write(VALID_CONFIG.replace("batch_size = 10", "batch_size = 0")), environ={})
        self.assertIn("translation.batch_size", str(ctx.exception))

    def test_missing_base_path_is_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(self._write(VALID_CONFIG.replace('"locales"', '"missing"')), environ={})

    def test_output_pattern_needs_lang_for_several_languages(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(self._write(VALID_CONFIG.replace("{lang}/{name}.po", "{name}.po")), environ={})

    def test_invalid_toml_is_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(self._write("[translation\nbatch_size = 1"), environ={})

    def test_missing_file_is_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(self.root / "absent.toml", environ={})


class CommandLineTests(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = pathlib.Path(self._tmp.name)
        (self.root / "locales").mkdir()
        write_po(self.root / "locales" / "app.pot", [entry("Hello"), entry("Bye")])
        self.config_path = self.root / "pollm.toml"
        self.config_path.write_text(VALID_CONFIG, encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _main(self, *argv: str) -> tuple[int, str]:
        buffer = io.StringIO()
        with patch.dict(os.environ, _environ_without_keys(), clear=True), redirect_stdout(buffer):
            code = main([str(self.config_path), *argv])
        return code, buffer.getvalue()

    def test_dry_run_succeeds_without_api_key_or_writes(self) -> None:
        code, output = self._main("--dry-run")

        self.assertEqual(code, EXIT_OK)
        self.assertIn("Summary (dry run)", output)
        self.assertFalse((self.root / "locales" / "fr").exists())

    def test_force_write_writes_simulated_catalogs(self) -> None:
        code, _ = self._main("--dry-run", "--force-write", "--lang-concurrent", "1")

        self.assertEqual(code, EXIT_OK)
        written = read_catalog(self.root / "locales" / "de" / "app.po")
        self.assertEqual([item.msgstr for item in written], ["[DRY:de] Hello", "[DRY:de] Bye"])

    def test_real_run_without_api_key_is_a_config_error(self) -> None:
        code, output = self._main()

        self.assertEqual(code, EXIT_CONFIG_ERROR)
        self.assertIn("No API key configured", output)
        self.assertFalse((self.root / "locales" / "fr").exists())

    def test_invalid_concurrency_is_a_config_error(self) -> None:
        code, _ = self._main("--dry-run", "--file-concurrent", "0")
        self.assertEqual(code, EXIT_CONFIG_ERROR)

    def test_zero_max_attempts_is_a_config_error(self) -> None:
        code, output = self._main("--dry-run", "--max-attempts", "0")

        self.assertEqual(code, EXIT_CONFIG_ERROR)
        self.assertIn("max_attempts", output)
        self.assertNotIn("Summary", output)

    def test_failures_are_listed_with_relative_paths(self) -> None:
        base = self.root / "locales"
        summary = RunSummary(
            files_processed=2,
            outcomes=[
                JobOutcome(
                    input_path=base / folder / "messages.pot",
                    output_path=base / folder / "fr" / "messages.po",
                    language="fr",
                    state=JobState.FAILED,
                    errors=[ErrorRecord(reason="authentication", message="bad key")],
                )
                for folder in ("shop", "admin")
            ],
            base_dir=base,
        )
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            print_summary(summary)

        output = buffer.getvalue()
        self.assertIn("- shop/messages.pot [fr]: authentication", output)
        self.assertIn("- admin/messages.pot [fr]: authentication", output)


if __name__ == "__main__":
    unittest.main()
