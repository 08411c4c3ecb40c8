import sqlite3
import threading
from typing import Optional, Dict, List, Tuple


class StorageDB:
    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            # Operation journal: one row per applied pool operation
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS operations (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp INTEGER,
                    op_type TEXT,
                    account TEXT,
                    data TEXT
                )
            ''')
            self.cursor.execute('''
                CREATE INDEX IF NOT EXISTS operations_account ON operations (account)
            ''')
            # State table: Key-Value store for pool, account and token state
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            self.conn.commit()

    # --- Journal Methods ---
    def append_operation(self, timestamp: int, op_type: str, account: str, data: str) -> int:
        with self._lock:
            self.cursor.execute(
                'INSERT INTO operations (timestamp, op_type, account, data) VALUES (?, ?, ?, ?)',
                (timestamp, op_type, account, data)
            )
            self.conn.commit()
            return self.cursor.lastrowid

    def get_operations(self, account: Optional[str] = None, limit: int = 100) -> List[Tuple[int, int, str, str, str]]:
        """Returns (seq, timestamp, op_type, account, data) rows, newest first."""
        with self._lock:
            if account is None:
                self.cursor.execute(
                    'SELECT seq, timestamp, op_type, account, data FROM operations ORDER BY seq DESC LIMIT ?',
                    (limit,)
                )
            else:
                self.cursor.execute(
                    'SELECT seq, timestamp, op_type, account, data FROM operations WHERE account = ? ORDER BY seq DESC LIMIT ?',
                    (account, limit)
                )
            return self.cursor.fetchall()

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
            self.conn.commit()

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        with self._lock:
            self.cursor.execute('SELECT key, value FROM state WHERE key LIKE ?', (f"{prefix}%",))
            return {row[0]: row[1] for row in self.cursor.fetchall()}

    def delete_state_by_prefix(self, prefix: str):
        with self._lock:
            self.cursor.execute('DELETE FROM state WHERE key LIKE ?', (f"{prefix}%",))
            self.conn.commit()

    def close(self):
        with self._lock:
            self.conn.close()
