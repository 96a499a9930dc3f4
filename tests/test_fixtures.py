"""
Test fixtures and sample data for Face-Off Stage tests.
"""
import json
from pathlib import Path
from typing import Dict, List
from unittest.mock import Mock, AsyncMock
import discord

from faceoff.models import Bank, Problem, ProblemSet


class TestFixtures:
    """Centralized test fixtures for all test modules."""

    @staticmethod
    def create_sample_problems(count: int = 5) -> List[Problem]:
        return [
            Problem(id=i + 1, question=f"Question {i + 1}?", answer=str(i + 1))
            for i in range(count)
        ]

    @staticmethod
    def create_sample_bank(sizes=(5, 3), source_url: str = "https://stage.example/quiz/question_bank.json") -> Bank:
        """Create a bank with one set per requested size."""
        sets = []
        for n, size in enumerate(sizes):
            sets.append(ProblemSet(
                name=f"Set {n + 1}",
                problems=tuple(TestFixtures.create_sample_problems(size))
            ))
        return Bank(sets=tuple(sets), source_url=source_url)

    @staticmethod
    def create_manifest_json(files: List[str]) -> Dict:
        return {"sets": list(files)}

    @staticmethod
    def create_valid_set_json() -> Dict:
        """Create valid set file structure mixing field aliases."""
        return {
            "name": "Algebra",
            "problems": [
                {"q": "2+2?", "answer": "4"},
                {"question": "Square root of 81?", "ans": 9},
                {"q": "Area of the triangle?", "answer": "12", "img": "images/tri.png"}
            ]
        }

    @staticmethod
    def create_temp_bank_files(temp_dir: str) -> Dict[str, Path]:
        """Create a manifest with two valid set files on disk."""
        base = Path(temp_dir)
        files = {}

        algebra = base / "algebra.json"
        with open(algebra, 'w', encoding='utf-8') as f:
            json.dump(TestFixtures.create_valid_set_json(), f)
        files["algebra"] = algebra

        sets_dir = base / "sets"
        sets_dir.mkdir(exist_ok=True)
        trivia = sets_dir / "trivia.json"
        with open(trivia, 'w', encoding='utf-8') as f:
            json.dump({
                "name": "Trivia",
                "problems": [
                    {"q": "Capital of France?", "answer": "Paris", "image": "images/paris.png"},
                    {"q": "   ", "answer": "blank"},
                    {"q": "Largest planet?", "answer": "Jupiter"}
                ]
            }, f)
        files["trivia"] = trivia

        manifest = base / "question_bank.json"
        with open(manifest, 'w', encoding='utf-8') as f:
            json.dump(TestFixtures.create_manifest_json(["algebra.json", "sets/trivia.json"]), f)
        files["manifest"] = manifest

        return files


class MockDiscordObjects:
    """Mock Discord objects for testing bot functionality."""

    @staticmethod
    def create_mock_interaction(channel_id: int = 12345, user_id: int = 67890) -> Mock:
        """Create mock Discord interaction."""
        interaction = Mock(spec=discord.Interaction)
        interaction.channel_id = channel_id
        interaction.channel = MockDiscordObjects.create_mock_channel(channel_id)
        interaction.user = Mock()
        interaction.user.id = user_id
        interaction.response = Mock()
        interaction.response.is_done.return_value = False
        interaction.response.send_message = AsyncMock()
        interaction.followup = Mock()
        interaction.followup.send = AsyncMock()
        return interaction

    @staticmethod
    def create_mock_channel(channel_id: int = 12345) -> Mock:
        """Create mock Discord channel."""
        channel = Mock(spec=discord.TextChannel)
        channel.id = channel_id
        channel.send = AsyncMock()
        return channel


class ManualClockHelpers:
    """Helpers for driving a manually clocked controller."""

    @staticmethod
    def tick_times(controller, count: int) -> List:
        return [controller.tick() for _ in range(count)]
