"""JSON file persistence for the credential set."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from abrpbridge.exceptions import BridgeConfigError
from abrpbridge.models.credentials import CredentialSet

_logger = logging.getLogger(__name__)


class CredentialStore:
    """Read and write the flat credential document (``access``, ``refresh``, ``id``, ...)."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        """Return the stored document, or ``{}`` when missing or unreadable."""
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError):
            _logger.warning("Credential file %s is unreadable; ignoring it", self._path, exc_info=True)
            return {}
        return raw if isinstance(raw, dict) else {}

    def save(self, document: dict[str, Any]) -> None:
        """Atomically replace the stored document."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def merge_and_save(self, credentials: CredentialSet) -> dict[str, Any]:
        """Overlay *credentials* on the stored document and persist the result.

        Keys the new set does not carry are retained from the previous file.
        """
        merged = {**self.load(), **credentials.to_document()}
        self.save(merged)
        return merged

    def load_credentials(self) -> CredentialSet:
        """Load the bootstrap credential set.

        Raises
        ------
        BridgeConfigError
            If the file is missing or lacks any of the three tokens.
        """
        document = self.load()
        if not document:
            raise BridgeConfigError(
                f"No credentials at {self._path}; run the 'authorize' command first",
            )
        try:
            return CredentialSet.model_validate(document)
        except ValidationError as exc:
            raise BridgeConfigError(f"Credential file {self._path} is incomplete: {exc}") from exc
