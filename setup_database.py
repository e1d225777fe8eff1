"""
RUN THIS SQL IN SUPABASE SQL EDITOR
"""

SQL_SCHEMA = """
-- Signal Queue (one row per account, key = 'q:<ACCOUNT>')
CREATE TABLE IF NOT EXISTS signal_queue (
    key TEXT PRIMARY KEY,
    value JSONB NOT NULL DEFAULT '[]'::jsonb, -- FIFO list of pending signals
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

-- Keep updated_at current on upsert
CREATE OR REPLACE FUNCTION touch_signal_queue() RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS signal_queue_touch ON signal_queue;
CREATE TRIGGER signal_queue_touch
    BEFORE UPDATE ON signal_queue
    FOR EACH ROW EXECUTE FUNCTION touch_signal_queue();
"""

def print_instructions():
    print("----- SIGNAL BRIDGE DATABASE SETUP -----")
    print("Please copy the SQL content from this file and run it inside the Supabase SQL Editor.")
    print("Without SUPABASE_URL / SUPABASE_KEY the bridge keeps its queue in memory instead.")

if __name__ == "__main__":
    print_instructions()
