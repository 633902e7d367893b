"""
Votenode SQLite Schema Definitions.

Process records, the synchronization checkpoint and vote packages.
"""

SCHEMA_VERSION = "1"

# ─── Processes ───────────────────────────────────────────────────────
CREATE_PROCESSES = """
CREATE TABLE IF NOT EXISTS processes (
    id                  INTEGER PRIMARY KEY,
    census_root         BLOB NOT NULL,
    census_size         INTEGER NOT NULL,
    eth_block_num       INTEGER NOT NULL,
    res_pub_start_block INTEGER NOT NULL,
    res_pub_window      INTEGER NOT NULL,
    min_participation   INTEGER NOT NULL,
    type                INTEGER NOT NULL,
    status              INTEGER NOT NULL DEFAULT 0,
    inserted_at         TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

CREATE_PROCESSES_INDEX = """
CREATE INDEX IF NOT EXISTS idx_processes_status ON processes(status, res_pub_start_block);
"""

# ─── Vote Packages (append-only) ─────────────────────────────────────
# One vote per (index, public_key, process_id): the same voter votes once
# per process.
CREATE_VOTEPACKAGES = """
CREATE TABLE IF NOT EXISTS votepackages (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    indx        INTEGER NOT NULL,
    public_key  BLOB NOT NULL,
    weight      BLOB NOT NULL,
    merkleproof BLOB NOT NULL,
    signature   BLOB NOT NULL,
    vote        BLOB NOT NULL,
    inserted_at TEXT NOT NULL DEFAULT (datetime('now')),
    process_id  INTEGER NOT NULL REFERENCES processes(id),
    UNIQUE (indx, public_key, process_id)
);
"""

CREATE_VOTEPACKAGES_INDEX = """
CREATE INDEX IF NOT EXISTS idx_votepackages_process ON votepackages(process_id, indx);
"""

# ─── Sync checkpoint (single row) ────────────────────────────────────
CREATE_SYNC_STATE = """
CREATE TABLE IF NOT EXISTS sync_state (
    id                  INTEGER PRIMARY KEY CHECK (id = 0),
    last_sync_block_num INTEGER NOT NULL
);
INSERT OR IGNORE INTO sync_state (id, last_sync_block_num) VALUES (0, 0);
"""

# ─── Metadata ────────────────────────────────────────────────────────
CREATE_META = """
CREATE TABLE IF NOT EXISTS votenode_meta (
    key     TEXT PRIMARY KEY,
    value   TEXT NOT NULL
);
"""

ALL_SCHEMA = [
    CREATE_PROCESSES,
    CREATE_PROCESSES_INDEX,
    CREATE_VOTEPACKAGES,
    CREATE_VOTEPACKAGES_INDEX,
    CREATE_SYNC_STATE,
    CREATE_META,
]


def get_init_meta() -> list[tuple[str, str]]:
    """Return initial metadata key-value pairs."""
    return [
        ("schema_version", SCHEMA_VERSION),
    ]


# SQLite INTEGER is a signed 64-bit value
MAX_SQLITE_INT = 2**63 - 1


def fits_integer(value: int) -> bool:
    """Whether value can be bound to an INTEGER column of this schema."""
    return 0 <= value <= MAX_SQLITE_INT
