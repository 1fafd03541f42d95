"""
Record base class: dataclass rows with store metadata.

    @dataclass
    class Order(Record):
        _columns = ("reference", "state")
        reference: str = ""
        state: str = "received"

The store sets the _store_* attributes after writing or reading; a record
without a client is detached and lives in memory only.
"""

from typing import Optional


class Record:

    _columns = ()

    # Store metadata, set by StoreClient after writing / reading
    _store_id: Optional[str] = None
    _store_version: Optional[int] = None
    _store_client = None

    def to_row(self):
        """Column values of this record, keyed by column name."""
        return {c: getattr(self, c) for c in self._columns}

    @classmethod
    def from_row(cls, row):
        """Build a record from a column dict; extra keys are ignored."""
        return cls(**{c: row[c] for c in cls._columns if c in row})

    def _bind(self, client, record_id, version):
        self._store_client = client
        self._store_id = str(record_id)
        self._store_version = version

    def _assign(self, fields):
        for name, value in fields.items():
            setattr(self, name, value)

    def _check_columns(self, fields):
        unknown = set(fields) - set(self._columns)
        if unknown:
            raise ValueError(
                f"Unknown {type(self).__name__} fields: {sorted(unknown)}"
            )

    @property
    def is_detached(self):
        return self._store_client is None
