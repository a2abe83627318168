"""
VM Record Store Module

Keeps the VM definitions in memory, keyed by name, and loads/saves them
from a JSON document. Loading never fails: a missing or corrupt document
yields an empty store. Saving is atomic and any failure is fatal.
"""

import os
import json
import logging
import tempfile
from dataclasses import dataclass, asdict, fields
from typing import Dict, List, Optional, Any

from .config import config_file_path
from .error_handling import PersistError

logger = logging.getLogger(__name__)


@dataclass
class VMRecord:
    """Launch parameters of one defined VM"""
    name: str
    memory: str
    cpu: str
    threads: str
    disk: str
    iso: str = ""

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for JSON serialization"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: Optional[str] = None) -> 'VMRecord':
        """
        Create a VMRecord from a dictionary.

        The map key wins over a missing "name" field. Absent optional fields
        default to an empty string; non-string values are stringified.
        """
        values = {}
        for f in fields(cls):
            value = data.get(f.name)
            if value is None:
                value = name if f.name == 'name' and name else ""
            values[f.name] = str(value)
        if not values['name']:
            raise ValueError("record has no name")
        return cls(**values)


class RecordStore:
    """
    In-memory registry of VM records with JSON persistence.
    """

    def __init__(self, path: Optional[str] = None, records: Optional[Dict[str, VMRecord]] = None):
        self.path = path or config_file_path()
        self._records: Dict[str, VMRecord] = dict(records or {})

    # --- in-memory map operations ---

    def get(self, name: str) -> Optional[VMRecord]:
        return self._records.get(name)

    def insert(self, record: VMRecord) -> None:
        """Insert a record, replacing any existing one with the same name."""
        if record.name in self._records:
            logger.info(f"Replacing existing record for VM '{record.name}'")
        self._records[record.name] = record

    def remove(self, name: str) -> Optional[VMRecord]:
        return self._records.pop(name, None)

    def names(self) -> List[str]:
        return sorted(self._records)

    def records(self) -> List[VMRecord]:
        return [self._records[name] for name in self.names()]

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    # --- persistence ---

    def to_document(self) -> Dict[str, Any]:
        return {"vms": {name: self._records[name].to_dict() for name in self.names()}}

    @classmethod
    def from_document(cls, document: Any, path: Optional[str] = None) -> 'RecordStore':
        """
        Builds a store from a parsed document. Entries that are not
        objects or have no usable name are skipped.
        """
        store = cls(path=path)
        if not isinstance(document, dict):
            raise ValueError("document root is not an object")
        vms = document.get("vms") or {}
        if not isinstance(vms, dict):
            raise ValueError("'vms' is not an object")

        for key, entry in vms.items():
            if not isinstance(entry, dict):
                logger.warning(f"Skipping malformed entry '{key}' in VM registry")
                continue
            try:
                record = VMRecord.from_dict(entry, name=key)
            except ValueError as e:
                logger.warning(f"Skipping entry '{key}' in VM registry: {e}")
                continue
            store._records[record.name] = record
        return store

    @classmethod
    def load(cls, path: Optional[str] = None) -> 'RecordStore':
        """
        Reads the persisted document. A missing, unreadable or corrupt
        file yields an empty store.
        """
        path = path or config_file_path()
        if not os.path.exists(path):
            logger.debug(f"No VM registry at {path}, starting empty")
            return cls(path=path)

        try:
            with open(path, 'r', encoding='utf-8') as f:
                document = json.load(f)
            store = cls.from_document(document, path=path)
        except (OSError, ValueError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(f"Ignoring unreadable VM registry {path}: {e}")
            return cls(path=path)

        logger.debug(f"Loaded {len(store)} VM record(s) from {path}")
        return store

    def save(self) -> None:
        """
        Writes the document atomically: a temp file in the same directory
        is renamed over the target.

        Raises:
            PersistError: on any I/O failure
        """
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode='w', encoding='utf-8', dir=directory,
                prefix='.config-', suffix='.tmp', delete=False
            ) as tmp_file:
                tmp_path = tmp_file.name
                json.dump(self.to_document(), tmp_file, indent=2, sort_keys=True)
                tmp_file.write("\n")
                tmp_file.flush()
                os.fsync(tmp_file.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            raise PersistError(
                f"Failed to save VM registry to {self.path}: {e}",
                details=str(e),
                context={'path': self.path},
                original_exception=e,
            ) from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    logger.warning(f"Could not remove temporary file {tmp_path}")

        logger.debug(f"Saved {len(self)} VM record(s) to {self.path}")
