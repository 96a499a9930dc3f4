"""
Unit tests for ConfigManager class.
"""
import unittest
import logging

from faceoff.config_manager import ConfigManager


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager functionality."""

    def setUp(self):
        """Set up test fixtures before each test method."""
        self.config_manager = ConfigManager()

        # Suppress logging during tests
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        """Clean up after each test method."""
        logging.disable(logging.NOTSET)

    def test_initialization_with_defaults(self):
        """Test that ConfigManager initializes with correct default values."""
        self.assertEqual(self.config_manager.get_manifest(), "./question_bank.json")
        self.assertEqual(self.config_manager.get_question_time(), 45)
        self.assertEqual(self.config_manager.get_fetch_timeout(), 30)

    def test_set_manifest_url(self):
        result = self.config_manager.set_manifest("https://stage.example/quiz/question_bank.json")
        self.assertTrue(result['success'])
        self.assertEqual(self.config_manager.get_manifest(), "https://stage.example/quiz/question_bank.json")

    def test_set_manifest_path_becomes_file_uri(self):
        result = self.config_manager.set_manifest("stage/question_bank.json")
        self.assertTrue(result['success'])
        self.assertTrue(self.config_manager.get_manifest().startswith("file://"))
        self.assertTrue(self.config_manager.get_manifest().endswith("/stage/question_bank.json"))

    def test_set_manifest_invalid_values(self):
        """Test rejecting empty and non-string manifest locations."""
        for value in ("", "   ", None, 42):
            result = self.config_manager.set_manifest(value)
            self.assertFalse(result['success'])
            self.assertIn('❌', result['user_message'])
        self.assertEqual(self.config_manager.get_manifest(), "./question_bank.json")

    def test_set_question_time_valid_values(self):
        """Test setting valid question time values."""
        result = self.config_manager.set_question_time(5)
        self.assertTrue(result['success'])
        self.assertEqual(self.config_manager.get_question_time(), 5)

        result = self.config_manager.set_question_time(120)
        self.assertTrue(result['success'])
        self.assertEqual(self.config_manager.get_question_time(), 120)
        self.assertIn('✅', result['user_message'])

    def test_set_question_time_invalid_values(self):
        """Test setting invalid question time values."""
        for value in (4, 0, -10, "30", 30.5, True, None):
            result = self.config_manager.set_question_time(value)
            self.assertFalse(result['success'])
        self.assertEqual(self.config_manager.get_question_time(), 45)

    def test_set_fetch_timeout(self):
        self.assertTrue(self.config_manager.set_fetch_timeout(2.5)['success'])
        self.assertEqual(self.config_manager.get_fetch_timeout(), 2.5)

        self.assertFalse(self.config_manager.set_fetch_timeout(0)['success'])
        self.assertFalse(self.config_manager.set_fetch_timeout("10")['success'])
        self.assertEqual(self.config_manager.get_fetch_timeout(), 2.5)

    def test_apply_stage_section(self):
        problems = self.config_manager.apply({
            'stage': {
                'manifest': 'https://stage.example/bank.json',
                'question_time': 60,
                'fetch_timeout': 10
            }
        })
        self.assertEqual(problems, [])
        self.assertEqual(self.config_manager.get_manifest(), 'https://stage.example/bank.json')
        self.assertEqual(self.config_manager.get_question_time(), 60)
        self.assertEqual(self.config_manager.get_fetch_timeout(), 10)

    def test_apply_reports_rejected_values(self):
        problems = self.config_manager.apply({'stage': {'question_time': 1, 'fetch_timeout': "x"}})
        self.assertEqual(len(problems), 2)
        self.assertEqual(self.config_manager.get_question_time(), 45)
        self.assertEqual(self.config_manager.get_fetch_timeout(), 30)

    def test_apply_without_stage_section(self):
        self.assertEqual(self.config_manager.apply({'bot': {'token': 'x'}}), [])
        self.assertEqual(self.config_manager.apply(None), [])
        self.assertEqual(self.config_manager.get_question_time(), 45)

    def test_reset_to_defaults(self):
        """Test resetting all settings to defaults."""
        self.config_manager.set_manifest("https://stage.example/bank.json")
        self.config_manager.set_question_time(90)
        self.config_manager.set_fetch_timeout(5)

        self.config_manager.reset_to_defaults()

        self.assertEqual(self.config_manager.get_manifest(), "./question_bank.json")
        self.assertEqual(self.config_manager.get_question_time(), 45)
        self.assertEqual(self.config_manager.get_fetch_timeout(), 30)

    def test_get_settings_summary(self):
        """Test getting formatted settings summary."""
        self.config_manager.set_question_time(30)
        summary = self.config_manager.get_settings_summary()

        self.assertIn("Stage Settings:", summary)
        self.assertIn("Manifest: ./question_bank.json", summary)
        self.assertIn("Question time: 30 seconds", summary)
        self.assertIn("Fetch timeout: 30 seconds", summary)


if __name__ == '__main__':
    unittest.main()
