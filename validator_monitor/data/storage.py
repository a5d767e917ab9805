"""JSON file persistence for the tracked validator set, one file per network."""

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ..core.config import get_settings
from ..core.errors import PersistenceError
from ..core.types import ValidatorRecord

logger = logging.getLogger(__name__)


class ValidatorStore:
    """Reads and overwrites ``validators_<network>.json`` as a whole."""

    def __init__(self, data_dir: Path | None = None):
        self.data_dir = Path(data_dir or get_settings().data_dir)

    def path_for(self, network: str) -> Path:
        return self.data_dir / f"validators_{network}.json"

    def load(self, network: str) -> list[ValidatorRecord]:
        """Load the saved set; a missing file is an empty set.

        Raises:
            PersistenceError: the file exists but cannot be read or parsed.
        """
        path = self.path_for(network)
        if not path.exists():
            return []

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e

        if not isinstance(data, dict):
            raise PersistenceError(f"Cannot read {path}: expected an object")

        try:
            validators = [ValidatorRecord.model_validate(v) for v in data.get("validators") or []]
        except ValidationError as e:
            raise PersistenceError(f"Invalid validator entry in {path}: {e}") from e

        logger.debug(f"Loaded {len(validators)} validators from {path}")
        return validators

    def save(self, network: str, validators: list[ValidatorRecord]) -> None:
        """Atomically replace the saved set.

        Raises:
            PersistenceError: the file could not be written.
        """
        path = self.path_for(network)
        payload = {"validators": [v.to_storage() for v in validators]}

        temp_file = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=path.parent,
                prefix=path.name + ".tmp",
                delete=False,
            ) as f:
                temp_file = f.name
                json.dump(payload, f, indent=2)
            os.replace(temp_file, path)
        except OSError as e:
            if temp_file and os.path.exists(temp_file):
                os.unlink(temp_file)
            raise PersistenceError(f"Cannot write {path}: {e}") from e

        logger.info(f"Saved {len(validators)} validators to {path}")
