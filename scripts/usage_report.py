# scripts/usage_report.py
import pandas as pd

from skillnorm.core.logging_config import setup_logging
from skillnorm.db.session import SessionLocal
from skillnorm.llm.usage import summarize_ledger


def main():
    setup_logging()
    with SessionLocal() as s:
        df = summarize_ledger(s)
    if df.empty:
        print("Usage ledger is empty")
        return
    with pd.option_context("display.max_rows", None, "display.width", 120):
        print(df.to_string(index=False))
    print(f"\nTotal cost: ${df['total_cost_usd'].sum():.4f}")


if __name__ == "__main__":
    main()
