from __future__ import annotations

import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.config import Settings, _number, _read_dotenv


class DotenvTestCase(unittest.TestCase):
    def test_reads_quoted_exported_and_skips_comments(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / ".env"
            path.write_text(
                "# provider\n"
                "OPENAI_MODEL='gpt-4o'\n"
                "export FRICTION_LOG_LEVEL=debug\n"
                "=orphan\n"
                "not a pair\n"
                'GROQ_MODEL="llama"\n',
                encoding="utf-8",
            )
            values = _read_dotenv(path)
        self.assertEqual(
            values,
            {"OPENAI_MODEL": "gpt-4o", "FRICTION_LOG_LEVEL": "debug", "GROQ_MODEL": "llama"},
        )

    def test_missing_file_is_empty(self) -> None:
        self.assertEqual(_read_dotenv(Path("/nonexistent/.env")), {})


class SettingsTestCase(unittest.TestCase):
    def test_environment_overrides(self) -> None:
        env = {
            "FRICTION_ROUND_TIMEOUT_SECONDS": "0.2",
            "FRICTION_MAX_ESSAY_CHARS": "5000",
            "FRICTION_LOG_LEVEL": " warning ",
            "FRICTION_LOG_JSON": "no",
            "FRICTION_ALLOWED_ORIGINS": "https://a.example, ,https://b.example",
            "OPENAI_API_KEY": "",
        }
        with patch.dict(os.environ, env):
            loaded = Settings.load()
        self.assertEqual(loaded.round_timeout_seconds, 1.0)
        self.assertEqual(loaded.max_essay_chars, 5000)
        self.assertEqual(loaded.log_level, "WARNING")
        self.assertFalse(loaded.log_json)
        self.assertEqual(loaded.allowed_origins, ["https://a.example", "https://b.example"])
        self.assertIsNone(loaded.openai_api_key)

    def test_number_default_when_unset(self) -> None:
        with patch.dict(os.environ, {"FRICTION_TEST_NUMBER": ""}):
            self.assertEqual(_number("FRICTION_TEST_NUMBER", 7.0, floor=1.0), 7.0)


if __name__ == "__main__":
    unittest.main()
