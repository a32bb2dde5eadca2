from __future__ import annotations

import sqlite3
from typing import Any, Dict, List

import pandas as pd

from .coordinator import Coordinator
from .models import PolicyState, StatusCode


def policies_frame(db_path: str) -> pd.DataFrame:
    """Return all committed policies joined with the status of their flight."""
    conn = sqlite3.connect(db_path)
    try:
        df = pd.read_sql_query(
            """
            SELECT p.flight_code, p.passenger, p.amount, p.payout, p.state,
                   f.airline, f.status_code
              FROM policies p
              JOIN flights f ON f.flight_code = p.flight_code
             ORDER BY f.id, p.passenger
            """,
            conn,
        )
    finally:
        conn.close()
    if df.empty:
        return df
    df["amount"] = df["amount"].map(int)
    df["payout"] = df["payout"].map(int)
    return df


def exposure_by_flight(db_path: str) -> pd.DataFrame:
    """Outstanding (unclaimed) payout liability per flight."""
    columns = ["flight_code", "airline", "status", "policies", "premiums", "exposure"]
    df = policies_frame(db_path)
    if df.empty:
        return pd.DataFrame(columns=columns)

    active = df[df["state"] == PolicyState.ACTIVE.value]
    if active.empty:
        return pd.DataFrame(columns=columns)

    result = (
        active.groupby(["flight_code", "airline", "status_code"], as_index=False)
        .agg(
            policies=("passenger", "count"),
            premiums=("amount", "sum"),
            exposure=("payout", "sum"),
        )
        .sort_values("exposure", ascending=False)
    )
    result["status"] = result["status_code"].map(lambda c: StatusCode(c).name)
    return result[columns].reset_index(drop=True)


def passenger_insurances(app: Coordinator, passenger: str) -> List[Dict[str, Any]]:
    """List the policies *passenger* holds, flight by flight."""
    insurances: List[Dict[str, Any]] = []
    for i in range(app.get_flights_count()):
        flight = app.get_flight_by_index(i)
        policy = app.get_insurance(flight.flight_code, passenger)
        if policy is None:
            continue
        insurances.append(
            {
                "flight": flight,
                "amount": policy.amount,
                "insuranceValue": policy.payout,
                "state": policy.state.value,
            }
        )
    return insurances


__all__ = ["policies_frame", "exposure_by_flight", "passenger_insurances"]
