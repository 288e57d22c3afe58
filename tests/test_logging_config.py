import logging
import os
import re
import shutil
import tempfile
import unittest

from cctools.logging_config import (
    PACKAGE_LOGGER,
    deactivate,
    enable_trace,
    format_scientific,
    setup_logging,
    teardown_logging,
)


class LoggingConfigTests(unittest.TestCase):

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.logger = logging.getLogger(PACKAGE_LOGGER)

    def tearDown(self):
        teardown_logging()
        shutil.rmtree(self.tmp_dir)

    def test_console_only(self):
        self.assertIsNone(setup_logging(logging.WARNING))
        self.assertEqual(len(self.logger.handlers), 1)
        self.assertEqual(self.logger.level, logging.WARNING)

    def test_reinitialisation_does_not_duplicate_handlers(self):
        setup_logging()
        setup_logging()
        self.assertEqual(len(self.logger.handlers), 1)

    def test_timestamped_log_file(self):
        log_dir = os.path.join(self.tmp_dir, "logs")
        path = setup_logging(logging.INFO, log_dir=log_dir)

        self.assertEqual(os.path.dirname(path), log_dir)
        self.assertRegex(os.path.basename(path), r"^log_\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}\.txt$")

        logging.getLogger("cctools.analysis").info("interpolating")
        teardown_logging()

        with open(path, encoding="utf-8") as f:
            content = f.read()
        self.assertIn("cctools.analysis - INFO - interpolating", content)
        self.assertEqual(self.logger.handlers, [])

    def test_explicit_log_file_wins(self):
        log_file = os.path.join(self.tmp_dir, "run.log")
        self.assertEqual(setup_logging(log_file=log_file, log_dir=os.path.join(self.tmp_dir, "unused")), log_file)
        self.assertFalse(os.path.exists(os.path.join(self.tmp_dir, "unused")))

    def test_enable_trace(self):
        setup_logging(logging.WARNING)
        enable_trace()
        self.assertEqual(self.logger.level, logging.DEBUG)
        self.assertTrue(all(h.level == logging.DEBUG for h in self.logger.handlers))

    def test_deactivate(self):
        setup_logging()
        deactivate()
        self.assertEqual(len(self.logger.handlers), 1)
        self.assertIsInstance(self.logger.handlers[0], logging.NullHandler)


class FormatScientificTests(unittest.TestCase):

    def test_normal_range(self):
        self.assertEqual(format_scientific(1.5), "1.500000")
        self.assertEqual(format_scientific(-250.0), "-250.000000")
        self.assertEqual(format_scientific(0.001), "0.001000")

    def test_scientific_range(self):
        self.assertEqual(format_scientific(3.0274872794616347e-05), "3.027487e-05")
        self.assertEqual(format_scientific(12345.0), "1.234500e+04")
        self.assertEqual(format_scientific(0.0), "0.000000e+00")
        self.assertTrue(re.match(r"^-?\d\.\d{6}e[+-]\d{2}$", format_scientific(-1e-9)))


if __name__ == '__main__':
    unittest.main()
