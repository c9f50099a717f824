import os
import unittest
from pathlib import Path
from unittest.mock import patch

from categorize_files.config import (
    DEFAULT_INDEX_PATH,
    DEFAULT_MAX_TEXT_BYTES,
    DEFAULT_THRESHOLD,
    load_settings,
)


class TestSettings(unittest.TestCase):
    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        settings = load_settings(dotenv=False)
        self.assertEqual(settings.gemini_api_key, "")
        self.assertEqual(settings.gemini_model, "flash")
        self.assertEqual(settings.threshold, DEFAULT_THRESHOLD)
        self.assertEqual(settings.threshold, 0.55)
        self.assertEqual(settings.max_text_bytes, DEFAULT_MAX_TEXT_BYTES)
        self.assertEqual(settings.index_path, DEFAULT_INDEX_PATH)
        self.assertIsNone(settings.log_dir)

    @patch.dict(os.environ, {
        "GEMINI_API_KEY": " abc ",
        "GEMINI_MODEL": "pro",
        "CATEGORIZE_THRESHOLD": "0.7",
        "CATEGORIZE_MAX_TEXT_BYTES": "4096",
        "CATEGORIZE_INDEX_PATH": "/var/lib/sorter/index.db",
        "CATEGORIZE_LOG_DIR": "/var/log/sorter",
    }, clear=True)
    def test_environment_overrides(self):
        settings = load_settings(dotenv=False)
        self.assertEqual(settings.gemini_api_key, "abc")
        self.assertEqual(settings.gemini_model, "pro")
        self.assertEqual(settings.threshold, 0.7)
        self.assertEqual(settings.max_text_bytes, 4096)
        self.assertEqual(settings.index_path, Path("/var/lib/sorter/index.db"))
        self.assertEqual(settings.log_dir, Path("/var/log/sorter"))

    @patch.dict(os.environ, {"CATEGORIZE_THRESHOLD": "1.5"}, clear=True)
    def test_threshold_out_of_range(self):
        with self.assertRaises(ValueError):
            load_settings(dotenv=False)

    @patch.dict(os.environ, {"CATEGORIZE_MAX_TEXT_BYTES": "lots"}, clear=True)
    def test_bad_integer(self):
        with self.assertRaises(ValueError):
            load_settings(dotenv=False)

    @patch.dict(os.environ, {}, clear=True)
    @patch("categorize_files.config.load_dotenv")
    def test_dotenv_loaded(self, mock_load_dotenv):
        load_settings()
        mock_load_dotenv.assert_called_once()


if __name__ == "__main__":
    unittest.main()
