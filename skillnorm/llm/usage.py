# skillnorm/llm/usage.py
"""
Token and cost accounting for LLM calls.

Each run owns a UsageAccumulator; nothing is kept at module level, so runs
(and tests) never share counters. ``flush`` appends the entries recorded
since the previous flush to the usage_ledger table.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from skillnorm.core.logging_config import get_logger
from skillnorm.db.models import UsageLedgerEntry
from skillnorm.llm.client import Completion
from skillnorm.schemas.skills import UsageTotals

logger = get_logger(__name__)

# USD per token
PRICES = {
    "gpt-4o-mini": {"input": 0.15 / 1_000_000, "output": 0.6 / 1_000_000},
    "gpt-5": {"input": 1.25 / 1_000_000, "output": 10.0 / 1_000_000},
    "text-embedding-3-small": {"input": 0.02 / 1_000_000, "output": 0.0},
}

_unpriced_warned: set[str] = set()


def price_for(model: str) -> dict[str, float] | None:
    # dated snapshots ("gpt-4o-mini-2024-07-18") use their family's price
    best = None
    for name in PRICES:
        if model == name or model.startswith(name + "-"):
            if best is None or len(name) > len(best):
                best = name
    return PRICES[best] if best else None


def cost_for(model: str, input_tokens: int, output_tokens: int) -> float:
    price = price_for(model)
    if price is None:
        if model not in _unpriced_warned:
            _unpriced_warned.add(model)
            logger.warning(f"No price configured for model '{model}', recording cost as 0")
        return 0.0
    return input_tokens * price["input"] + output_tokens * price["output"]


@dataclass
class UsageEntry:
    timestamp: datetime
    stage: str
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    batch_number: int


@dataclass
class UsageAccumulator:
    stage: str
    entries: list[UsageEntry] = field(default_factory=list)
    _flushed: int = 0

    def record(self, completion: Completion, batch_number: int) -> UsageEntry:
        entry = UsageEntry(
            timestamp=datetime.now(timezone.utc).replace(tzinfo=None),
            stage=self.stage,
            model=completion.model,
            input_tokens=completion.prompt_tokens,
            output_tokens=completion.completion_tokens,
            cost_usd=cost_for(completion.model, completion.prompt_tokens, completion.completion_tokens),
            batch_number=batch_number,
        )
        self.entries.append(entry)
        logger.info(
            f"[{self.stage}] batch {batch_number}: input={entry.input_tokens}, "
            f"output={entry.output_tokens}, cost=${entry.cost_usd:.5f}"
        )
        return entry

    @property
    def pending(self) -> list[UsageEntry]:
        return self.entries[self._flushed:]

    def merge(self, other: "UsageAccumulator") -> None:
        """Take over the entries ``other`` has not flushed yet; they are flushed from here."""
        pending = other.pending
        self.entries.extend(pending)
        other._flushed += len(pending)

    def totals(self) -> UsageTotals:
        return UsageTotals(
            calls=len(self.entries),
            input_tokens=sum(e.input_tokens for e in self.entries),
            output_tokens=sum(e.output_tokens for e in self.entries),
            cost_usd=sum(e.cost_usd for e in self.entries),
        )

    def flush(self, session_factory: sessionmaker) -> int:
        """Append unflushed entries to the ledger and commit. Returns rows written."""
        pending = self.pending
        if not pending:
            return 0
        with session_factory() as s:
            s.add_all([
                UsageLedgerEntry(
                    run_timestamp=e.timestamp,
                    stage=e.stage,
                    model_used=e.model,
                    input_tokens=e.input_tokens,
                    output_tokens=e.output_tokens,
                    total_cost_usd=e.cost_usd,
                    batch_number=e.batch_number,
                )
                for e in pending
            ])
            s.commit()
        self._flushed += len(pending)
        logger.debug(f"[{self.stage}] flushed {len(pending)} ledger entries")
        return len(pending)

    def log_summary(self) -> None:
        t = self.totals()
        logger.info(
            f"[{self.stage}] TOKEN & COST SUMMARY: calls={t.calls}, input={t.input_tokens}, "
            f"output={t.output_tokens}, total={t.input_tokens + t.output_tokens}, cost=${t.cost_usd:.4f}"
        )


LEDGER_COLUMNS = ["stage", "model_used", "input_tokens", "output_tokens", "total_cost_usd"]


def summarize_ledger(s: Session) -> pd.DataFrame:
    """Token and cost totals per (stage, model) over the whole ledger."""
    rows = s.execute(
        select(
            UsageLedgerEntry.stage,
            UsageLedgerEntry.model_used,
            UsageLedgerEntry.input_tokens,
            UsageLedgerEntry.output_tokens,
            UsageLedgerEntry.total_cost_usd,
        )
    ).all()
    df = pd.DataFrame([tuple(r) for r in rows], columns=LEDGER_COLUMNS)
    if df.empty:
        return pd.DataFrame(columns=["stage", "model_used", "calls", "input_tokens", "output_tokens", "total_cost_usd"])
    out = (
        df.groupby(["stage", "model_used"], as_index=False)
        .agg(
            calls=("input_tokens", "size"),
            input_tokens=("input_tokens", "sum"),
            output_tokens=("output_tokens", "sum"),
            total_cost_usd=("total_cost_usd", "sum"),
        )
        .sort_values(["stage", "model_used"])
        .reset_index(drop=True)
    )
    return out
