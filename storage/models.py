"""SQLite table definitions."""

CREATE_AGENTS_TABLE = """
CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    role TEXT NOT NULL,
    voting_weight REAL NOT NULL DEFAULT 1.0,
    ai_backend TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1
);
"""

CREATE_PRINCIPALS_TABLE = """
CREATE TABLE IF NOT EXISTS principals (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    balance_usd REAL NOT NULL DEFAULT 0,
    total_trades INTEGER NOT NULL DEFAULT 0
);
"""

CREATE_DEBATES_TABLE = """
CREATE TABLE IF NOT EXISTS debates (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    trigger_reason TEXT NOT NULL,
    current_price REAL NOT NULL,
    price_change_24h REAL NOT NULL DEFAULT 0,
    volume_24h REAL NOT NULL DEFAULT 0,
    market_data TEXT NOT NULL DEFAULT '{}',
    status TEXT NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    duration INTEGER,
    consensus_reached INTEGER NOT NULL DEFAULT 0,
    final_decision TEXT,
    confidence REAL,
    error TEXT
);
"""

CREATE_DEBATE_MESSAGES_TABLE = """
CREATE TABLE IF NOT EXISTS debate_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    debate_id TEXT NOT NULL REFERENCES debates(id),
    agent_id TEXT NOT NULL REFERENCES agents(id),
    message TEXT NOT NULL,
    sentiment TEXT NOT NULL,
    confidence REAL NOT NULL,
    recommendation TEXT NOT NULL,
    reasoning TEXT NOT NULL DEFAULT '{}',
    suggested_price REAL,
    suggested_size REAL,
    stop_loss REAL,
    take_profit REAL,
    created_at TEXT NOT NULL,
    UNIQUE (debate_id, agent_id)
);
"""

CREATE_VOTES_TABLE = """
CREATE TABLE IF NOT EXISTS votes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    debate_id TEXT NOT NULL REFERENCES debates(id),
    agent_id TEXT NOT NULL REFERENCES agents(id),
    decision TEXT NOT NULL,
    confidence REAL NOT NULL,
    weight REAL NOT NULL,
    reasoning TEXT DEFAULT '',
    created_at TEXT NOT NULL,
    UNIQUE (debate_id, agent_id)
);
"""

CREATE_DECISIONS_TABLE = """
CREATE TABLE IF NOT EXISTS decisions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    debate_id TEXT NOT NULL UNIQUE REFERENCES debates(id),
    action TEXT NOT NULL,
    confidence REAL NOT NULL,
    total_votes INTEGER NOT NULL,
    total_weight REAL NOT NULL,
    buy_votes INTEGER NOT NULL DEFAULT 0,
    sell_votes INTEGER NOT NULL DEFAULT 0,
    hold_votes INTEGER NOT NULL DEFAULT 0,
    pass_votes INTEGER NOT NULL DEFAULT 0,
    buy_score REAL NOT NULL DEFAULT 0,
    sell_score REAL NOT NULL DEFAULT 0,
    hold_score REAL NOT NULL DEFAULT 0,
    pass_score REAL NOT NULL DEFAULT 0,
    suggested_price REAL,
    suggested_size REAL,
    stop_loss REAL,
    take_profit REAL,
    executed INTEGER NOT NULL DEFAULT 0,
    executed_at TEXT,
    execution_started_at TEXT,
    created_at TEXT NOT NULL
);
"""

CREATE_TRADES_TABLE = """
CREATE TABLE IF NOT EXISTS trades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    venue TEXT NOT NULL,
    trade_type TEXT NOT NULL,
    side TEXT NOT NULL,
    quantity REAL NOT NULL DEFAULT 0,
    entry_price REAL NOT NULL,
    usd_value REAL NOT NULL DEFAULT 0,
    status TEXT NOT NULL,
    tx_ref TEXT,
    debate_id TEXT NOT NULL REFERENCES debates(id),
    decision_id INTEGER NOT NULL UNIQUE REFERENCES decisions(id),
    confidence REAL,
    leverage INTEGER,
    error_message TEXT,
    is_real INTEGER NOT NULL DEFAULT 0,
    opened_at TEXT NOT NULL,
    closed_at TEXT
);
"""

ALL_TABLES = [
    CREATE_AGENTS_TABLE,
    CREATE_PRINCIPALS_TABLE,
    CREATE_DEBATES_TABLE,
    CREATE_DEBATE_MESSAGES_TABLE,
    CREATE_VOTES_TABLE,
    CREATE_DECISIONS_TABLE,
    CREATE_TRADES_TABLE,
]
