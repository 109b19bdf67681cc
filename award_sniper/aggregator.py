from __future__ import annotations

import logging
import sqlite3

import pandas as pd

from .db import DB_FILE

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "origin",
    "destination",
    "year",
    "month",
    "searches",
    "min_price",
    "mean_price",
    "last_price",
]


def route_summary(db_path: str = DB_FILE, days: int = 30) -> pd.DataFrame:
    """Summarise answered searches per route and travel month.

    Parameters
    ----------
    db_path:
        Path to the SQLite database.
    days:
        Only searches made in the last *days* days are considered.

    Rows are ordered by the cheapest price seen.
    """

    conn = sqlite3.connect(db_path)
    try:
        df = pd.read_sql_query(
            """
            SELECT origin, destination, year, month, searched_at, price
              FROM flight_searches
             WHERE searched_at >= DATE('now', ?)
               AND price IS NOT NULL
             ORDER BY id
            """,
            conn,
            params=(f"-{int(days)} days",),
            parse_dates=["searched_at"],
        )
    finally:
        conn.close()

    if df.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    df = df.sort_values("searched_at", kind="stable")
    grouped = df.groupby(["origin", "destination", "year", "month"], as_index=False)
    result_df = grouped.agg(
        searches=("price", "size"),
        min_price=("price", "min"),
        mean_price=("price", "mean"),
        last_price=("price", "last"),
    )
    logger.info("Summarised %d searches into %d routes", len(df), len(result_df))
    return result_df.sort_values("min_price").reset_index(drop=True)[SUMMARY_COLUMNS]


__all__ = ["route_summary"]
