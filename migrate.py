"""
Creates the project schema (stocks / update_history) so the DB can be rebuilt from scratch.
"""

import os
import psycopg2
from dotenv import load_dotenv

load_dotenv(dotenv_path=".env")

DDL = """
CREATE TABLE IF NOT EXISTS stocks(
  symbol TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  country TEXT NOT NULL,
  market_cap DOUBLE PRECISION NOT NULL DEFAULT 0,
  price DOUBLE PRECISION NOT NULL CHECK (price > 0),
  changes DOUBLE PRECISION NOT NULL DEFAULT 0,
  changes_percentage DOUBLE PRECISION NOT NULL DEFAULT 0,
  monthly_changes DOUBLE PRECISION NOT NULL DEFAULT 0,
  monthly_changes_percentage DOUBLE PRECISION NOT NULL DEFAULT 0,
  indexes TEXT[] NOT NULL DEFAULT '{}',
  last_updated TIMESTAMPTZ NOT NULL,
  created_at TIMESTAMPTZ NOT NULL,
  updated_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_stocks_country ON stocks(country);
CREATE INDEX IF NOT EXISTS idx_stocks_last_updated ON stocks(last_updated DESC);

CREATE TABLE IF NOT EXISTS update_history(
  id SERIAL PRIMARY KEY,
  last_update_date DATE NOT NULL,
  last_monthly_date DATE NOT NULL,
  last_update_time TIMESTAMPTZ NOT NULL,
  total_updates INT NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_update_history_time ON update_history(last_update_time DESC);
"""


def apply_schema(conn):
    with conn:
        with conn.cursor() as cur:
            cur.execute(DDL)


def main():
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL missing")
    conn = psycopg2.connect(database_url)
    try:
        apply_schema(conn)
        print("[MIGRATE] ok")
    finally:
        conn.close()

if __name__ == "__main__":
    main()
