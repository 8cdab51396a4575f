# skillnorm/schemas/skills.py
from pydantic import BaseModel, Field


class SourceDocument(BaseModel):
    id: str
    text: str


class SkillMention(BaseModel):
    source_document_id: str
    raw_text: str
    canonical_key: str
    required: bool = False


class VectorRecord(BaseModel):
    id: int
    mention_id: int
    embedding: list[float]


class SkillOut(BaseModel):
    id: int
    skill_name: str
    canonical_key: str
    total_references: int

    class Config:
        from_attributes = True


# ---------- Run summaries ----------

class UsageTotals(BaseModel):
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0


class ExtractionSummary(BaseModel):
    pending: int = 0
    processed: int = 0
    skipped: int = 0
    mentions: int = 0
    usage: UsageTotals = Field(default_factory=UsageTotals)


class NormalizationSummary(BaseModel):
    delta: int = 0
    deferred: bool = False
    unique_skills: int = 0
    batches: int = 0
    renamed: int = 0
    documents_written: int = 0
    skills_touched: int = 0
    links_created: int = 0
    merged_by_consolidation: int = 0
    usage: UsageTotals = Field(default_factory=UsageTotals)


class ClusteringSummary(BaseModel):
    vectors: int = 0
    clusters: int = 0
    eligible: int = 0
    promoted: int = 0
    skipped_single_document: int = 0
    links_created: int = 0


class ConsolidationSummary(BaseModel):
    before: int = 0
    after: int = 0
    merged: int = 0
    total_references: int = 0
    documents_rewritten: int = 0


class UserSkillsSummary(BaseModel):
    users: int = 0
    linked_users: int = 0
    skipped: int = 0
    new_skills: int = 0
    links_created: int = 0
    usage: UsageTotals = Field(default_factory=UsageTotals)
