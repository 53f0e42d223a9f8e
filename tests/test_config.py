#!/usr/bin/env python3
"""
Tests for settings.
"""

import json
import os
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coffeemap.config import Settings
from coffeemap.errors import ConfigError


class TestSettings(unittest.TestCase):
    """Tests for Settings.from_dict and Settings.load"""

    def test_defaults(self):
        """An empty object gives the defaults"""
        settings = Settings.from_dict({})
        self.assertEqual(settings.cache_ttl, 180.0)
        self.assertEqual(settings.validation_delay, 0.2)
        self.assertEqual(settings.file_extensions, ('coffee',))
        self.assertEqual(settings.log_level, 'INFO')

    def test_section(self):
        """The `coffeemap` section is used when present"""
        settings = Settings.from_dict({'coffeemap': {
            'cacheTtl': 60,
            'ignoredErrorCodes': [6133, 7006],
            'fileExtensions': ['.coffee', 'litcoffee'],
            'logLevel': 'debug',
        }})
        self.assertEqual(settings.cache_ttl, 60.0)
        self.assertEqual(settings.ignored_error_codes, (6133, 7006))
        self.assertEqual(settings.file_extensions, ('coffee', 'litcoffee'))
        self.assertEqual(settings.log_level, 'DEBUG')

    def test_unknown_keys_ignored(self):
        """Settings of other versions do not break"""
        settings = Settings.from_dict({'validationDelay': 0.5, 'somethingNew': True})
        self.assertEqual(settings.validation_delay, 0.5)

    def test_invalid_values(self):
        """Known keys with wrong values are rejected"""
        for data in ({'cacheTtl': -1}, {'cacheTtl': True}, {'ignoredErrorCodes': ['6133']},
                     {'logLevel': 'TRACE'}, {'compilerScript': 3}, {'coffeemap': []}):
            with self.subTest(data=data):
                with self.assertRaises(ConfigError):
                    Settings.from_dict(data)

    def test_load(self):
        """Settings are read from a JSON file"""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'settings.json')
            with open(path, 'w') as f:
                json.dump({'coffeemap': {'compilerScript': '/opt/coffeescript.js'}}, f)
            settings = Settings.load(path)
        self.assertEqual(settings.compiler_script, '/opt/coffeescript.js')

    def test_load_invalid_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'settings.json')
            with open(path, 'w') as f:
                f.write('{"coffeemap": ')
            with self.assertRaises(ConfigError):
                Settings.load(path)


if __name__ == '__main__':
    unittest.main()
