SCHEMA_SQL = '''
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL CHECK (collection IN ('organs','maintenances','deletedItems')),
    id TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (collection, id)
);

CREATE TABLE IF NOT EXISTS anon_session (
    token TEXT PRIMARY KEY,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    expires_at TEXT NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_doc_collection ON documents(collection);
CREATE INDEX IF NOT EXISTS idx_doc_organ ON documents(json_extract(data, '$.organId'))
    WHERE collection = 'maintenances';
CREATE INDEX IF NOT EXISTS idx_doc_location ON documents(json_extract(data, '$.locationId'))
    WHERE collection = 'organs';

-- Append-only guards (audit trail)
CREATE TRIGGER IF NOT EXISTS forbid_update_deleted_items
BEFORE UPDATE ON documents
WHEN OLD.collection = 'deletedItems'
BEGIN
  SELECT RAISE(ABORT, 'UPDATE proibido: append-only (deletedItems)');
END;
CREATE TRIGGER IF NOT EXISTS forbid_delete_deleted_items
BEFORE DELETE ON documents
WHEN OLD.collection = 'deletedItems'
BEGIN
  SELECT RAISE(ABORT, 'DELETE proibido: append-only (deletedItems)');
END;
''';
