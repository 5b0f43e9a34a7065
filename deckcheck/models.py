from sqlalchemy import Column, String, DateTime, Integer, Text, Float, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from datetime import datetime
import uuid
from deckcheck.database import Base


class DeckStatus:
    UPLOADED = "uploaded"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


class PageStatus:
    PENDING = "pending"
    EXTRACTED = "extracted"
    ANALYZED = "analyzed"


class InsightType:
    PROBLEM = "problem"
    SOLUTION = "solution"
    MARKET = "market"
    TRACTION = "traction"
    TEAM = "team"
    DESIGN = "design"
    MONETIZATION = "monetization"
    NARRATIVE = "narrative"

    ALL = (PROBLEM, SOLUTION, MARKET, TRACTION, TEAM, DESIGN, MONETIZATION, NARRATIVE)


class SessionStatus:
    COMPLETED = "completed"
    FAILED = "failed"
    NO_ITEMS_FOUND = "no_items_found"


class Deck(Base):
    __tablename__ = "decks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, default=0, nullable=False)  # bytes
    file_type = Column(String(100), nullable=True)
    storage_path = Column(String(500), nullable=False)  # GCS object path
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)  # set when extraction finishes
    status = Column(String(20), default=DeckStatus.UPLOADED, nullable=False)  # uploaded, extracting, analyzing, complete, error
    page_count = Column(Integer, default=0, nullable=False)  # authoritative once status is analyzing/complete/error
    uploaded_by = Column(String(255), nullable=True)  # null for anonymous uploads
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_decks_status_uploaded_at", "status", "uploaded_at"),
        Index("ix_decks_status_processed_at", "status", "processed_at"),
    )


class DeckPage(Base):
    __tablename__ = "deck_pages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    deck_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    page_number = Column(Integer, nullable=False)  # 1-based, contiguous
    text = Column(Text, nullable=False)
    extracted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    word_count = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default=PageStatus.EXTRACTED, nullable=False)  # pending, extracted, analyzed

    __table_args__ = (
        UniqueConstraint("deck_id", "page_number", name="uq_deck_pages_deck_page"),
    )


def insight_key(deck_id, page_number: int, insight_type: str) -> str:
    """Composite document id for an Insight: one per (deck, page, type)."""
    return f"{deck_id}:{page_number}:{insight_type}"


class Insight(Base):
    __tablename__ = "deck_insights"

    id = Column(String(120), primary_key=True)  # insight_key(deck_id, page_number, type)
    deck_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    page_number = Column(Integer, nullable=False)
    rating = Column(Integer, nullable=False)  # 1-10
    feedback = Column(Text, nullable=False, default="")
    reasoning = Column(Text, nullable=False, default="")
    actor_name = Column(String(50), nullable=False)
    generated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AutomationLog(Base):
    """One row per actor invocation; written once when the session ends."""
    __tablename__ = "automation_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    action = Column(String(100), nullable=False)
    deck_id = Column(UUID(as_uuid=True), nullable=True)
    status = Column(String(20), nullable=False)  # completed, failed, no_items_found
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    logs = Column(JSONB, nullable=False, default=list)  # [{timestamp, message, data}]
    errors = Column(JSONB, nullable=False, default=list)
    metadata_ = Column("metadata", JSONB, nullable=False, default=dict)


class AICost(Base):
    __tablename__ = "ai_costs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    model = Column(String(100), nullable=False)
    tokens_prompt = Column(Integer, nullable=False)
    tokens_completion = Column(Integer, nullable=False)
    total_tokens = Column(Integer, nullable=False)
    cost_usd = Column(Float, nullable=False)
    action = Column(String(100), nullable=False)
    actor_name = Column(String(50), nullable=False)
    deck_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    page_number = Column(Integer, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
