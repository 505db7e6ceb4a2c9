import json
import tempfile
import unittest
from pathlib import Path

from discovery.adapters.config.file_config_reader import FileConfigReader
from discovery.core.errors import ConfigurationError
from discovery.core.models import normalize_address

INBOX = normalize_address("0x" + "1c" * 20)


class FileConfigReaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.project_dir = self.root / "nova" / "ethereum"
        self.project_dir.mkdir(parents=True)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write_config(self, text: str) -> None:
        (self.project_dir / "config.jsonc").write_text(text, encoding="utf-8")

    def test_reads_jsonc_config(self) -> None:
        self._write_config(
            """
            {
              // AnyTrust chain
              "name": "nova",
              "initialAddresses": ["%s"],
              "maxDepth": 3,
              "overrides": {
                "%s": {
                  "fields": { "dacKeyset": { "type": "arbitrumDACKeyset" } },
                  "ignoreRelatives": ["dacKeyset"]
                }
              }
            }
            """ % (INBOX.lower(), INBOX.lower())
        )
        config = FileConfigReader(str(self.root)).read_config("nova", "ethereum")

        self.assertEqual(config.name, "nova")
        self.assertEqual(config.chain, "ethereum")
        self.assertEqual(config.initial_addresses, [INBOX])
        self.assertEqual(config.max_depth, 3)
        self.assertEqual(config.max_addresses, 200)
        self.assertEqual(config.get_overrides(INBOX).ignore_relatives, ["dacKeyset"])
        self.assertTrue(config.hash.startswith("0x"))
        self.assertEqual(len(config.hash), 66)

    def test_hash_changes_with_handler_definitions(self) -> None:
        reader = FileConfigReader(str(self.root))
        self._write_config(json.dumps({"name": "nova", "initialAddresses": [INBOX]}))
        first = reader.read_config("nova", "ethereum").hash
        self._write_config(json.dumps({"name": "nova", "initialAddresses": [INBOX], "maxDepth": 2}))
        second = reader.read_config("nova", "ethereum").hash

        self.assertNotEqual(first, second)

    def test_mismatched_name_and_missing_files(self) -> None:
        reader = FileConfigReader(str(self.root))
        self._write_config(json.dumps({"name": "other", "initialAddresses": [INBOX]}))
        with self.assertRaises(ConfigurationError):
            reader.read_config("nova", "ethereum")
        with self.assertRaises(ConfigurationError):
            reader.read_discovery("nova", "ethereum")

    def test_reads_previous_discovery(self) -> None:
        payload = {"name": "nova", "contracts": [{"address": INBOX}]}
        (self.project_dir / "discovered.json").write_text(json.dumps(payload), encoding="utf-8")

        self.assertEqual(FileConfigReader(str(self.root)).read_discovery("nova", "ethereum"), payload)


if __name__ == "__main__":
    unittest.main()
