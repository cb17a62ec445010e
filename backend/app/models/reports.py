"""Reporting views over logbook_entries.

v_daily_summary: (substation_id, log_date) -> severity counts
v_daily_category_summary: (substation_id, log_date, category_name) -> entry count

The views are created with the schema (metadata after_create) and by the
initial migration. The SQL is kept to functions PostgreSQL and SQLite share.
"""
from sqlalchemy import DDL, Column, Date, Integer, MetaData, String, Table, event

from models.base import Base

UNCATEGORIZED = "Uncategorized"

# Separate metadata: views must never be emitted as CREATE TABLE
view_metadata = MetaData()

daily_summary_view = Table(
    "v_daily_summary",
    view_metadata,
    Column("substation_id", Integer),
    Column("substation_name", String),
    Column("log_date", Date),
    Column("total_entries", Integer),
    Column("normal_count", Integer),
    Column("warning_count", Integer),
    Column("critical_count", Integer),
)

daily_category_view = Table(
    "v_daily_category_summary",
    view_metadata,
    Column("substation_id", Integer),
    Column("log_date", Date),
    Column("category_name", String),
    Column("entry_count", Integer),
)

DAILY_SUMMARY_SQL = """
CREATE VIEW v_daily_summary AS
SELECT l.substation_id AS substation_id,
       s.substation_name AS substation_name,
       DATE(l.entry_datetime) AS log_date,
       COUNT(*) AS total_entries,
       SUM(CASE WHEN l.severity = 'Normal' THEN 1 ELSE 0 END) AS normal_count,
       SUM(CASE WHEN l.severity = 'Warning' THEN 1 ELSE 0 END) AS warning_count,
       SUM(CASE WHEN l.severity = 'Critical' THEN 1 ELSE 0 END) AS critical_count
FROM logbook_entries l
JOIN substations s ON s.id = l.substation_id
GROUP BY l.substation_id, s.substation_name, DATE(l.entry_datetime)
"""

DAILY_CATEGORY_SQL = f"""
CREATE VIEW v_daily_category_summary AS
SELECT l.substation_id AS substation_id,
       DATE(l.entry_datetime) AS log_date,
       COALESCE(ec.category_name, '{UNCATEGORIZED}') AS category_name,
       COUNT(*) AS entry_count
FROM logbook_entries l
LEFT JOIN event_categories ec ON ec.id = l.event_category_id
GROUP BY l.substation_id, DATE(l.entry_datetime), COALESCE(ec.category_name, '{UNCATEGORIZED}')
"""

for _stmt in (
    "DROP VIEW IF EXISTS v_daily_category_summary",
    "DROP VIEW IF EXISTS v_daily_summary",
    DAILY_SUMMARY_SQL,
    DAILY_CATEGORY_SQL,
):
    event.listen(Base.metadata, "after_create", DDL(_stmt))

for _stmt in (
    "DROP VIEW IF EXISTS v_daily_category_summary",
    "DROP VIEW IF EXISTS v_daily_summary",
):
    event.listen(Base.metadata, "before_drop", DDL(_stmt))
