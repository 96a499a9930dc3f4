"""
Configuration manager for Face-Off Stage settings.
"""
import logging
from typing import Dict, Any, List

from .bank_loader import BankLoader


class ConfigManager:
    """Manages stage configuration loaded from config.json."""

    # Default configuration values
    DEFAULT_MANIFEST = "./question_bank.json"
    DEFAULT_QUESTION_TIME = 45
    DEFAULT_FETCH_TIMEOUT = 30

    # Validation limits
    MIN_QUESTION_TIME = 5
    MIN_FETCH_TIMEOUT = 1

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._manifest = self.DEFAULT_MANIFEST
        self._question_time = self.DEFAULT_QUESTION_TIME
        self._fetch_timeout = self.DEFAULT_FETCH_TIMEOUT

    def apply(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'stage' section of a config dictionary.

        Invalid values are reported and the defaults kept.

        Returns:
            List of user-facing messages for rejected settings
        """
        stage_config = config.get('stage', {}) if isinstance(config, dict) else {}
        problems = []

        if 'manifest' in stage_config:
            result = self.set_manifest(stage_config['manifest'])
            if not result['success']:
                problems.append(result['user_message'])

        if 'question_time' in stage_config:
            result = self.set_question_time(stage_config['question_time'])
            if not result['success']:
                problems.append(result['user_message'])

        if 'fetch_timeout' in stage_config:
            result = self.set_fetch_timeout(stage_config['fetch_timeout'])
            if not result['success']:
                problems.append(result['user_message'])

        for problem in problems:
            self.logger.warning(f"Configuration rejected: {problem}")
        return problems

    def set_manifest(self, location: str) -> Dict[str, Any]:
        """
        Set the manifest location (URL or local path).

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(location, str):
            error_msg = f"Manifest location must be a string, got {type(location).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid manifest: Expected a URL or path, got {type(location).__name__}"
            }

        if not location.strip():
            error_msg = "Manifest location cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Manifest location cannot be empty"
            }

        try:
            normalized = BankLoader.normalize_location(location.strip())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid manifest location: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid manifest location: {location}"
            }

        self._manifest = normalized
        self.logger.info(f"Manifest set to {normalized}")
        return {
            'success': True,
            'message': f"Manifest set to {normalized}",
            'user_message': f"✅ Question bank will load from {normalized}"
        }

    def get_manifest(self) -> str:
        return self._manifest

    def set_question_time(self, seconds: int) -> Dict[str, Any]:
        """
        Set the default per-question time.

        Values below the minimum are rejected here; the live session clamps
        them instead.
        """
        if isinstance(seconds, bool) or not isinstance(seconds, int):
            error_msg = f"Question time must be an integer, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if seconds < self.MIN_QUESTION_TIME:
            error_msg = f"Question time must be at least {self.MIN_QUESTION_TIME} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_QUESTION_TIME} seconds"
            }

        self._question_time = seconds
        self.logger.info(f"Question time set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Question time set to {seconds} seconds",
            'user_message': f"✅ Timer set to {seconds} seconds"
        }

    def get_question_time(self) -> int:
        return self._question_time

    def set_fetch_timeout(self, seconds) -> Dict[str, Any]:
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            error_msg = f"Fetch timeout must be a number, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if seconds < self.MIN_FETCH_TIMEOUT:
            error_msg = f"Fetch timeout must be at least {self.MIN_FETCH_TIMEOUT} second"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Fetch timeout too short: Minimum is {self.MIN_FETCH_TIMEOUT} second"
            }

        self._fetch_timeout = seconds
        return {
            'success': True,
            'message': f"Fetch timeout set to {seconds} seconds",
            'user_message': f"✅ Fetch timeout set to {seconds} seconds"
        }

    def get_fetch_timeout(self) -> float:
        return self._fetch_timeout

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._manifest = self.DEFAULT_MANIFEST
        self._question_time = self.DEFAULT_QUESTION_TIME
        self._fetch_timeout = self.DEFAULT_FETCH_TIMEOUT
        self.logger.info("All settings reset to default values")

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        return (
            f"Stage Settings:\n"
            f"• Manifest: {self._manifest}\n"
            f"• Question time: {self._question_time} seconds\n"
            f"• Fetch timeout: {self._fetch_timeout} seconds"
        )
