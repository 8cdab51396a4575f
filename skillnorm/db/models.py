# skillnorm/db/models.py
from datetime import datetime
from sqlalchemy import (
    JSON, Boolean, DateTime, Float, ForeignKey, Integer, LargeBinary, String, Text,
    UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from skillnorm.db.base import Base

# column width for skill names and keys
SKILL_TEXT_LENGTH = 255


# ---------- Source documents (owned by the scrapers) ----------

class Description(Base):
    __tablename__ = "descriptions"

    processing_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# ---------- Extraction ----------

class ExtractedDocument(Base):
    """One row per description that went through LLM extraction."""
    __tablename__ = "extracted_documents"

    processing_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    mention_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skills_csv: Mapped[str] = mapped_column(Text, default="", nullable=False)
    extracted_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    mentions = relationship("SkillMention", back_populates="document", cascade="all, delete-orphan")


class SkillMention(Base):
    __tablename__ = "skill_mentions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    processing_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("extracted_documents.processing_id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    raw_text: Mapped[str] = mapped_column(String(SKILL_TEXT_LENGTH), nullable=False)
    canonical_key: Mapped[str] = mapped_column(String(SKILL_TEXT_LENGTH), index=True, nullable=False)
    required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    document = relationship("ExtractedDocument", back_populates="mentions")


class SkillVector(Base):
    __tablename__ = "skill_vectors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    mention_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("skill_mentions.id", ondelete="CASCADE"),
        unique=True,
        index=True,
        nullable=False,
    )
    model: Mapped[str] = mapped_column(String(128), nullable=False)
    dim: Mapped[int] = mapped_column(Integer, nullable=False)
    vector: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)  # np.float32.tobytes()


# ---------- Normalization ----------

class ConsolidatedDocument(Base):
    """Per-document skill lists after canonical-name resolution."""
    __tablename__ = "consolidated_skills"

    processing_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    required_skills: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    skills_to_learn: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    skills_csv: Mapped[str] = mapped_column(Text, default="", nullable=False)
    normalized_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Skill(Base):
    __tablename__ = "skills"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    skill_name: Mapped[str] = mapped_column(String(SKILL_TEXT_LENGTH), nullable=False)
    canonical_key: Mapped[str] = mapped_column(String(SKILL_TEXT_LENGTH), unique=True, index=True, nullable=False)
    total_references: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class SkillJob(Base):
    __tablename__ = "skills_jobs"
    __table_args__ = (UniqueConstraint("processing_id", "skill_id", name="uq_skills_jobs_pair"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    processing_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    skill_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("skills.id", ondelete="CASCADE"), index=True, nullable=False
    )


class UsageLedgerEntry(Base):
    """Append-only; rows are never updated or deleted."""
    __tablename__ = "usage_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    stage: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    model_used: Mapped[str] = mapped_column(String(64), nullable=False)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    total_cost_usd: Mapped[float] = mapped_column(Float, nullable=False)
    batch_number: Mapped[int] = mapped_column(Integer, nullable=False)


# ---------- Users ----------

class UserProfile(Base):
    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    technical_skills: Mapped[str | None] = mapped_column(Text)
    soft_skills: Mapped[str | None] = mapped_column(Text)
    extra_curriculars: Mapped[str | None] = mapped_column(Text)
    personal_projects: Mapped[str | None] = mapped_column(Text)


class UserSkill(Base):
    __tablename__ = "user_skills"
    __table_args__ = (UniqueConstraint("user_id", "skill_id", name="uq_user_skills_pair"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    skill_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("skills.id", ondelete="CASCADE"), index=True, nullable=False
    )


# ---------- Coordination ----------

class PipelineLock(Base):
    __tablename__ = "pipeline_locks"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner: Mapped[str] = mapped_column(String(128), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
