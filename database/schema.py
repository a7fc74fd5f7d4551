# ======================= APP STATE ======================

# One serialized AppState (JSON) per user and storage key.
state_schema = '''
    CREATE TABLE IF NOT EXISTS app_state (
        user_id INTEGER NOT NULL,
        storage_key TEXT NOT NULL,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

        PRIMARY KEY (user_id, storage_key)
    )
'''
