"""
Comprehensive integration tests for the Face-Off Stage.
Tests complete session flows from a bank on disk through the controller.
"""
import unittest
import asyncio
import tempfile
import json
import random
import shutil
from pathlib import Path

from faceoff.bank_loader import BankLoader, LoadError
from faceoff.config_manager import ConfigManager
from faceoff.leaderboard import Leaderboard
from faceoff.models import Cue, Phase
from faceoff.session_controller import SessionController
from tests.test_fixtures import ManualClockHelpers


class TestCompleteStageFlow(unittest.IsolatedAsyncioTestCase):
    """Test a complete session from load to completion."""

    async def asyncSetUp(self):
        """Set up integration test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self._create_bank_files()

        self.config_manager = ConfigManager()
        self.config_manager.apply({
            'stage': {
                'manifest': str(Path(self.temp_dir) / "question_bank.json"),
                'question_time': 10
            }
        })
        self.controller = SessionController(
            question_time=self.config_manager.get_question_time(),
            rng=random.Random(3)
        )
        self.cues = []
        self.controller.add_cue_listener(self.cues.append)

    async def asyncTearDown(self):
        """Clean up test environment."""
        self.controller.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _create_bank_files(self):
        math_set = {
            "name": "Math",
            "problems": [
                {"q": "What is 2+2?", "answer": 4},
                {"q": "What is 5*3?", "answer": "15"},
                {"q": "", "answer": "dropped"},
                {"question": "What is 10-7?", "ans": "3"},
                {"q": "What is 3^2?", "answer": 9, "image": "img/square.png"}
            ]
        }
        science_set = {
            "name": "Science",
            "problems": [
                {"q": "Chemical symbol for water?", "answer": "H2O"},
                {"q": "Planets in the solar system?", "answer": 8}
            ]
        }
        base = Path(self.temp_dir)
        (base / "sets").mkdir()
        with open(base / "sets" / "math.json", 'w', encoding='utf-8') as f:
            json.dump(math_set, f)
        with open(base / "sets" / "science.json", 'w', encoding='utf-8') as f:
            json.dump(science_set, f)
        with open(base / "question_bank.json", 'w', encoding='utf-8') as f:
            json.dump({"sets": ["sets/math.json", "sets/science.json"]}, f)

    async def _load(self):
        loader = BankLoader(timeout=self.config_manager.get_fetch_timeout())
        bank = await loader.load(self.config_manager.get_manifest())
        self.controller.load_bank(bank)
        return bank

    async def test_full_session(self):
        bank = await self._load()
        self.assertEqual([s.name for s in bank.sets], ["Math", "Science"])
        self.assertEqual([p.id for p in bank.sets[0].problems], [1, 2, 3, 4])
        self.assertEqual(self.controller.state.total_rounds, 4)

        self.controller.change_rounds(3)
        self.assertTrue(self.controller.start())
        seen = [self.controller.current_problem().id]

        # Let the first question run out
        ManualClockHelpers.tick_times(self.controller, 10)
        self.assertEqual(self.controller.state.time_left, 0)
        self.controller.toggle_reveal()
        self.assertTrue(self.controller.state.revealed)

        self.controller.next()
        seen.append(self.controller.current_problem().id)
        self.assertEqual(self.controller.state.time_left, 10)
        self.controller.next()
        seen.append(self.controller.current_problem().id)
        self.controller.next()

        self.assertIs(self.controller.state.phase, Phase.IDLE)
        self.assertEqual(len(set(seen)), 3)
        self.assertEqual(self.cues.count(Cue.START), 3)
        self.assertEqual(self.cues.count(Cue.END), 1)

    async def test_image_resolves_against_manifest_directory(self):
        await self._load()
        self.controller.reorder("in_order")
        self.controller.goto(4)

        image_url = self.controller.current_image_url()
        expected = (Path(self.temp_dir).resolve() / "img" / "square.png").as_uri()
        self.assertEqual(image_url, expected)

    async def test_switch_set_mid_session(self):
        await self._load()
        self.controller.start()
        self.controller.change_active_set(1)

        self.assertIs(self.controller.state.phase, Phase.IDLE)
        self.assertEqual(self.controller.active_set.name, "Science")
        self.controller.reorder("in_order")
        self.controller.start()
        self.assertEqual(self.controller.current_problem().answer_text, "H2O")

    async def test_failed_load_publishes_nothing(self):
        (Path(self.temp_dir) / "sets" / "science.json").unlink()

        with self.assertRaises(LoadError):
            await self._load()
        self.assertEqual(self.controller.bank.sets, ())
        self.assertFalse(self.controller.start())

    async def test_live_countdown(self):
        controller = SessionController(
            question_time=5, loop=asyncio.get_running_loop(), tick_interval=0.01
        )
        loader = BankLoader()
        controller.load_bank(await loader.load(self.config_manager.get_manifest()))
        try:
            controller.start()
            await asyncio.sleep(0.02)
            controller.toggle_pause()
            frozen = controller.state.time_left
            await asyncio.sleep(0.05)
            self.assertEqual(controller.state.time_left, frozen)

            controller.toggle_pause()
            await asyncio.sleep(0.2)
            self.assertEqual(controller.state.time_left, 0)
        finally:
            controller.close()


class TestLeaderboardAlongsideSession(unittest.TestCase):
    """The leaderboard is independent of the session lifecycle."""

    def test_scores_survive_session_changes(self):
        controller = SessionController()
        board = Leaderboard()
        alice = board.add("Alice")
        board.bump(alice.id, 2)

        controller.home()
        controller.change_rounds(1)
        self.assertEqual(board.get(alice.id).score, 2)


if __name__ == '__main__':
    unittest.main()
