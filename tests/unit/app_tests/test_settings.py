import json
import pathlib
import tempfile
import unittest
from unittest.mock import patch

from pfstatus.app.settings import (
    Settings,
    SettingsError,
    read_settings_json,
    write_settings_json,
)


class TestSettings(unittest.TestCase):
    def test_from_environment(self):
        """The scratch root and user are taken from $SCRATCH and $USER."""

        settings = Settings.from_environment({"SCRATCH": "/scratch/jdoe", "USER": "jdoe"})
        self.assertEqual("/scratch/jdoe", settings.scratch_root)
        self.assertEqual("jdoe", settings.user)
        self.assertEqual("ParFlow", settings.job_name_filter)
        self.assertIsNone(settings.host)

    @patch("pfstatus.app.settings.getpass.getuser", return_value="login_name")
    def test_from_environment_without_user(self, mock_getuser):
        """The login name is used if $USER isn't set, and the scratch root is unset if
        $SCRATCH isn't set."""

        settings = Settings.from_environment({})
        self.assertEqual("login_name", settings.user)
        self.assertIsNone(settings.scratch_root)

    def test_merged_ignores_none(self):
        """Overrides replace settings unless they are None."""

        settings = Settings(scratch_root="/a", user="u").merged(
            scratch_root="/b", user=None, host="login01"
        )
        self.assertEqual(Settings(scratch_root="/b", user="u", host="login01"), settings)

    def test_from_dict_unknown_names(self):
        with self.assertRaises(SettingsError):
            Settings.from_dict({"scratch_root": "/a", "colour": "blue"})


class TestSettingsJson(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.path = pathlib.Path(self.tmp.name, "settings.json")

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_write_then_read(self):
        settings = Settings(scratch_root="/scratch", user="jdoe", host="login01")
        write_settings_json(settings, self.path)
        self.assertEqual(settings, Settings.from_dict(read_settings_json(self.path)))

    def test_read_partial_settings(self):
        """Only the settings in the file are returned."""

        self.path.write_text(json.dumps({"job_name_filter": "Test"}))
        self.assertEqual({"job_name_filter": "Test"}, read_settings_json(self.path))

    def test_read_errors(self):
        """A SettingsError is raised for a missing file, invalid JSON, a JSON value that
        isn't an object, or unknown settings."""

        with self.assertRaises(SettingsError):
            read_settings_json(pathlib.Path(self.tmp.name, "missing.json"))

        for contents in ["{not json", "[1, 2]", '{"colour": "blue"}']:
            with self.subTest(contents=contents):
                self.path.write_text(contents)
                with self.assertRaises(SettingsError):
                    read_settings_json(self.path)


if __name__ == "__main__":
    unittest.main()
