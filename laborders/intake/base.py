"""
BaseIntakeAdapter: abstract base for every payload adapter.

Each step of the workflow (and the import webhook) has one adapter that:
1. subclasses BaseIntakeAdapter
2. implements transform()
3. is registered in factory.py

Services never see raw request data; they only receive the dataclasses from
types.py, already validated.
"""

import json
from abc import ABC, abstractmethod
from datetime import date
from typing import Any

from ..exceptions import ValidationError

REQUIRED = 'This field is required.'
TRI_STATE = ('-1', '0', '1')


class BaseIntakeAdapter(ABC):
    """
    Three-stage pipeline: parse → transform → validate

    transform() records problems with self.error(path, message) instead of
    raising, so one response reports every bad field at once.
    """

    def __init__(self, data: Any, files: Any = None):
        self._data = data
        self._files = files
        self._parsed: dict = {}
        self.errors: dict[str, str] = {}

    # ── must implement ─────────────────────────────────────────────────────

    @abstractmethod
    def transform(self) -> Any:
        """Turn self._parsed into the typed payload for this adapter."""

    # ── default implementations ────────────────────────────────────────────

    def parse(self) -> dict:
        """
        Normalise the request body into a plain dict.

        JSON bodies arrive as dicts (or raw bytes/str). Multipart bodies carry
        the JSON document in a "payload" form field next to the uploads.
        """
        raw = self._data
        try:
            if isinstance(raw, (bytes, str)):
                raw = json.loads(raw) if raw else {}
            elif hasattr(raw, 'getlist'):
                payload = raw.get('payload')
                raw = json.loads(payload) if payload else {key: raw.get(key) for key in raw.keys()}
        except (TypeError, ValueError) as exc:
            raise ValidationError.from_errors({'payload': f'Malformed JSON: {exc}'})

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValidationError.from_errors({'payload': 'Expected a JSON object.'})
        self._parsed = raw
        return raw

    def validate(self, payload: Any) -> None:
        if self.errors:
            raise ValidationError.from_errors(self.errors)

    def process(self) -> Any:
        """parse → transform → validate; returns the validated payload."""
        self.parse()
        payload = self.transform()
        self.validate(payload)
        return payload

    # ── helpers for transform() ────────────────────────────────────────────

    def error(self, path: str, message: str) -> None:
        self.errors.setdefault(path, message)

    def required(self, obj: Any, key: str, path: str) -> Any:
        value = obj.get(key) if isinstance(obj, dict) else None
        if value is None or value == '' or value == []:
            self.error(path, REQUIRED)
            return None
        return value

    def as_int(self, value: Any, path: str, required: bool = True) -> Any:
        if value is None or value == '':
            if required:
                self.error(path, REQUIRED)
            return None
        if isinstance(value, bool):
            self.error(path, 'Must be an integer.')
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            self.error(path, 'Must be an integer.')
            return None

    def as_date(self, value: Any, path: str, before_today: bool = False, not_future: bool = False) -> Any:
        if value is None or value == '':
            self.error(path, REQUIRED)
            return None
        if isinstance(value, date):
            parsed = value
        else:
            try:
                # Accepts "YYYY-MM-DD" and full ISO timestamps.
                parsed = date.fromisoformat(str(value)[:10])
            except ValueError:
                self.error(path, 'Must be a date in YYYY-MM-DD format.')
                return None
        today = date.today()
        if before_today and parsed >= today:
            self.error(path, 'Must be a date before today.')
        if not_future and parsed > today:
            self.error(path, 'Must not be in the future.')
        return parsed

    def as_tri_state(self, value: Any, path: str) -> Any:
        if value is None or value == '':
            self.error(path, REQUIRED)
            return None
        value = str(value)
        if value not in TRI_STATE:
            self.error(path, f'Must be one of {", ".join(TRI_STATE)}.')
            return None
        return value

    def as_list(self, value: Any, path: str, required: bool = True) -> list:
        if value is None:
            if required:
                self.error(path, REQUIRED)
            return []
        if not isinstance(value, list):
            self.error(path, 'Must be a list.')
            return []
        if required and not value:
            self.error(path, REQUIRED)
        return value

    @staticmethod
    def as_text(value: Any) -> Any:
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def uploads(self, key: str) -> list:
        """Uploaded file handles under a multipart key."""
        if not self._files:
            return []
        if hasattr(self._files, 'getlist'):
            return list(self._files.getlist(key))
        value = self._files.get(key)
        if value is None:
            return []
        return list(value) if isinstance(value, (list, tuple)) else [value]
