"""
Bank loader for the question manifest and its problem-set files.
"""
import asyncio
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse
from urllib.request import url2pathname

import requests

from .models import Bank, Problem, ProblemSet, stringify_value


DEFAULT_SET_NAME = "Untitled Set"


class LoadErrorKind(Enum):
    MANIFEST = "manifest"
    SET_FILE = "set_file"


class LoadError(Exception):
    """Raised when the manifest or any of its set files cannot be loaded."""

    def __init__(self, kind: LoadErrorKind, which: Optional[str] = None, reason: str = ""):
        self.kind = kind
        self.which = which
        self.reason = reason
        if kind is LoadErrorKind.MANIFEST:
            message = "Could not load question bank manifest"
        else:
            message = f"Could not load problem set '{which}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class FetchError(Exception):
    """A single document could not be fetched or parsed."""
    pass


class BankLoader:
    """Loads and validates a question bank from a manifest."""

    def __init__(self, timeout: float = 30):
        """
        Initialize BankLoader.

        Args:
            timeout: Per-request timeout in seconds for HTTP fetches
        """
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def normalize_location(location: str) -> str:
        """
        Turn a manifest location into an absolute URL.

        http(s) and file URLs are returned unchanged; anything else is
        treated as a local path.
        """
        parsed = urlparse(location)
        if parsed.scheme in ("http", "https", "file"):
            return location
        return Path(location).expanduser().resolve().as_uri()

    async def load(self, manifest_url: str) -> Bank:
        """
        Load the manifest and every set it references.

        Set files are fetched concurrently. The load is all-or-nothing: any
        failing set fails the whole load and no partial bank is returned.

        Args:
            manifest_url: URL or local path of the manifest file

        Returns:
            Bank with sets in manifest order

        Raises:
            LoadError: If the manifest or any set file fails to load
        """
        manifest_url = self.normalize_location(manifest_url)

        try:
            manifest = await self._fetch_json(manifest_url)
        except FetchError as e:
            self.logger.error(f"Failed to load manifest {manifest_url}: {e}")
            raise LoadError(LoadErrorKind.MANIFEST, reason=str(e)) from e

        if not isinstance(manifest, dict):
            self.logger.error(f"Manifest {manifest_url} is not a JSON object")
            raise LoadError(LoadErrorKind.MANIFEST, reason="manifest must be a JSON object")

        entries = self.parse_manifest(manifest)
        sets = await asyncio.gather(
            *(self._load_set(manifest_url, entry) for entry in entries)
        )

        bank = Bank(sets=tuple(sets), source_url=manifest_url)
        self.logger.info(
            f"Loaded {len(bank.sets)} problem sets from {manifest_url}",
            extra={
                'event_type': 'bank_loaded',
                'set_count': len(bank.sets),
                'problem_count': sum(len(s.problems) for s in bank.sets)
            }
        )
        return bank

    @staticmethod
    def parse_manifest(manifest: Dict[str, Any]) -> List[str]:
        """Return the set file entries; a missing or non-array 'sets' is empty."""
        sets = manifest.get("sets")
        if not isinstance(sets, list):
            return []
        return [stringify_value(entry) for entry in sets]

    async def _load_set(self, manifest_url: str, entry: str) -> ProblemSet:
        set_url = urljoin(manifest_url, entry)
        try:
            data = await self._fetch_json(set_url)
        except FetchError as e:
            self.logger.error(f"Failed to load problem set {entry}: {e}")
            raise LoadError(LoadErrorKind.SET_FILE, which=entry, reason=str(e)) from e

        if not isinstance(data, dict):
            self.logger.error(f"Problem set {entry} is not a JSON object")
            raise LoadError(LoadErrorKind.SET_FILE, which=entry, reason="set file must be a JSON object")

        problem_set = self.parse_problem_set(data)
        self.logger.info(f"Loaded problem set '{problem_set.name}' with {len(problem_set.problems)} problems")
        return problem_set

    def parse_problem_set(self, data: Dict[str, Any]) -> ProblemSet:
        """
        Normalize a set file into a ProblemSet.

        Problems with an empty question or an empty answer are dropped.
        Ids are 1-based positions within the kept problems.
        """
        name = stringify_value(data.get("name") or DEFAULT_SET_NAME)
        raw_problems = data.get("problems")
        if not isinstance(raw_problems, list):
            raw_problems = []

        problems = []
        for position, raw in enumerate(raw_problems):
            problem = self._parse_problem(raw, len(problems) + 1)
            if problem is None:
                self.logger.debug(f"Dropped problem {position + 1} of set '{name}'")
                continue
            problems.append(problem)

        return ProblemSet(name=name, problems=tuple(problems))

    @staticmethod
    def _parse_problem(raw: Any, problem_id: int) -> Optional[Problem]:
        if not isinstance(raw, dict):
            return None

        question = _first_present(raw, "q", "question")
        question = stringify_value(question).strip()
        answer = _first_present(raw, "answer", "ans")
        image = stringify_value(_first_present(raw, "image", "img")).strip()

        if not question:
            return None
        if answer is None or not stringify_value(answer):
            return None

        if not isinstance(answer, (int, float)) or isinstance(answer, bool):
            answer = stringify_value(answer)

        return Problem(id=problem_id, question=question, answer=answer, image=image)

    async def _fetch_json(self, url: str) -> Any:
        """
        Fetch and parse one JSON document.

        Raises:
            FetchError: If the document is unreachable or not valid JSON
        """
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            return await asyncio.to_thread(self._fetch_http, url)
        if parsed.scheme == "file":
            return await asyncio.to_thread(self._read_file, Path(url2pathname(parsed.path)))
        raise FetchError(f"Unsupported URL scheme: {url}")

    def _fetch_http(self, url: str) -> Any:
        try:
            response = requests.get(url, timeout=self.timeout, headers={'Cache-Control': 'no-cache'})
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise FetchError(f"HTTP error fetching {url}: {e}") from e
        except ValueError as e:
            raise FetchError(f"Invalid JSON in {url}: {e}") from e

    @staticmethod
    def _read_file(path: Path) -> Any:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise FetchError(f"Invalid JSON in {path}: {e}") from e
        except UnicodeDecodeError as e:
            raise FetchError(f"{path} is not UTF-8 text: {e}") from e
        except FileNotFoundError as e:
            raise FetchError(f"File not found: {path}") from e
        except OSError as e:
            raise FetchError(f"Failed to read {path}: {e}") from e


def _first_present(raw: Dict[str, Any], *keys: str) -> Any:
    """Return the first value among keys that is not missing or null."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None
