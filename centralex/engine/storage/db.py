import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, Optional, List

class StorageDB:
    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.RLock()
        self._in_batch = False
        self._init_db()

    def _init_db(self):
        with self._lock:
            # State table: Key-Value store for engine state (JSON bodies)
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            # Events table: append-only event log
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS events (
                    seq INTEGER PRIMARY KEY,
                    source TEXT,
                    name TEXT,
                    timestamp INTEGER,
                    data TEXT
                )
            ''')
            # Index by name for observers filtering on one event type
            self.cursor.execute('CREATE INDEX IF NOT EXISTS events_by_name ON events (name)')
            self.conn.commit()

    def _commit(self):
        if not self._in_batch:
            self.conn.commit()

    @contextmanager
    def batch(self) -> Iterator['StorageDB']:
        """Groups every write made inside the block into one SQLite transaction."""
        with self._lock:
            if self._in_batch:
                yield self
                return
            self._in_batch = True
            try:
                yield self
            except Exception:
                self.conn.rollback()
                raise
            else:
                self.conn.commit()
            finally:
                self._in_batch = False

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
            self._commit()

    # --- Event Methods ---
    def append_event(self, seq: int, source: str, name: str, timestamp: int, data: str):
        with self._lock:
            self.cursor.execute(
                'INSERT INTO events (seq, source, name, timestamp, data) VALUES (?, ?, ?, ?, ?)',
                (seq, source, name, timestamp, data)
            )
            self._commit()

    def get_events(self, name: Optional[str] = None, source: Optional[str] = None) -> List[str]:
        """Returns event JSON bodies in emission order."""
        query = 'SELECT data FROM events'
        clauses = []
        args = []
        if name:
            clauses.append('name = ?')
            args.append(name)
        if source:
            clauses.append('source = ?')
            args.append(source)
        if clauses:
            query += ' WHERE ' + ' AND '.join(clauses)
        query += ' ORDER BY seq'
        with self._lock:
            self.cursor.execute(query, tuple(args))
            return [row[0] for row in self.cursor.fetchall()]

    def get_last_event_seq(self) -> int:
        with self._lock:
            self.cursor.execute('SELECT MAX(seq) FROM events')
            row = self.cursor.fetchone()
            return row[0] if row and row[0] is not None else 0

    def close(self):
        with self._lock:
            self.conn.close()
