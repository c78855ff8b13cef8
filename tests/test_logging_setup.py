"""
Tests for setup_logging().

Covers:
- JSON file output with `extra=` fields as top-level keys
- repeat calls not stacking handlers
- foreign root handlers not blocking setup
"""

import json
import logging
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from src.core.logging_setup import (
    CONSOLE_HANDLER_NAME,
    FILE_HANDLER_NAME,
    QUIET_LOGGERS,
    setup_logging,
)

OUR_HANDLERS = (CONSOLE_HANDLER_NAME, FILE_HANDLER_NAME)


class TestSetupLogging(unittest.TestCase):

    def setUp(self):
        self.log_dir = tempfile.mkdtemp()
        self.root = logging.getLogger()
        self.saved_level = self.root.level
        self.saved_quiet = {name: logging.getLogger(name).level for name in QUIET_LOGGERS}
        env = patch.dict(os.environ, {'LOG_DIR': self.log_dir, 'LOG_LEVEL': 'WARNING'})
        env.start()
        self.addCleanup(env.stop)

    def tearDown(self):
        for handler in self.our_handlers():
            self.root.removeHandler(handler)
            handler.close()
        self.root.setLevel(self.saved_level)
        for name, level in self.saved_quiet.items():
            logging.getLogger(name).setLevel(level)
        shutil.rmtree(self.log_dir, ignore_errors=True)

    def our_handlers(self):
        return [h for h in self.root.handlers if h.get_name() in OUR_HANDLERS]

    def test_extra_fields_land_in_json_file(self):
        setup_logging()

        logging.getLogger('src.test').info("Status message edit timed out", extra={'subscription_id': 7})
        for handler in self.our_handlers():
            handler.flush()

        with open(os.path.join(self.log_dir, 'bot.log'), encoding='utf-8') as f:
            records = [json.loads(line) for line in f if line.strip()]

        record = records[-1]
        self.assertEqual(record['message'], "Status message edit timed out")
        self.assertEqual(record['level'], 'INFO')
        self.assertEqual(record['logger'], 'src.test')
        self.assertEqual(record['subscription_id'], 7)
        self.assertIn('timestamp', record)

    def test_console_uses_log_level(self):
        setup_logging()
        console = next(h for h in self.our_handlers() if h.get_name() == CONSOLE_HANDLER_NAME)
        self.assertEqual(console.level, logging.WARNING)
        self.assertEqual(logging.getLogger('discord').level, logging.WARNING)

    def test_second_call_adds_nothing(self):
        setup_logging()
        setup_logging()
        self.assertEqual(len(self.our_handlers()), 2)

    def test_foreign_handler_does_not_block_setup(self):
        foreign = logging.NullHandler()
        self.root.addHandler(foreign)
        self.addCleanup(self.root.removeHandler, foreign)

        setup_logging()

        self.assertEqual(len(self.our_handlers()), 2)


if __name__ == "__main__":
    unittest.main()
