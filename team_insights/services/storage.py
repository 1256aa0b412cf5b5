"""
Key/value persistence for small JSON documents (identity merge preferences).
"""

import json
import logging

from sqlalchemy.orm import Session

from ..models import StoredValue

logger = logging.getLogger(__name__)


class DatabaseStorage:
    def __init__(self, db: Session):
        self.db = db

    def save(self, key: str, value) -> None:
        serialized = json.dumps(value)
        record = self.db.get(StoredValue, key)
        if record:
            record.value = serialized
        else:
            self.db.add(StoredValue(key=key, value=serialized))
        self.db.commit()
        logger.debug(f"Stored {len(serialized)} bytes under '{key}'")

    def load(self, key: str):
        record = self.db.get(StoredValue, key)
        if record is None:
            return None
        return json.loads(record.value)

    def remove(self, key: str) -> None:
        record = self.db.get(StoredValue, key)
        if record is not None:
            self.db.delete(record)
            self.db.commit()

    def exists(self, key: str) -> bool:
        return self.db.get(StoredValue, key) is not None
