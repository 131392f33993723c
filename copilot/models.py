"""
Shared data types for the Content Co-Pilot.

Every agent reads ``ContentItem`` values through an ``AnalysisContext`` and
emits ``Suggestion`` (or ``EnhancedSuggestion``) values.  Persisted
suggestions come back from the store as ``SuggestionRecord`` rows, which is
what the workflow engine evaluates.

Hierarchy of types
------------------
- **Enums**: ``ContentStatus``, ``SuggestionStatus``, ``PriorityWeight``,
  ``Rating``, ``ContentLengthFilter``
- **Content**: ``ContentItem``, ``AnalysisMetrics``
- **Agent configuration**: ``AgentConfig``
- **Suggestions**: ``Suggestion``, ``ReasoningStep``, ``EnhancedSuggestion``,
  ``SuggestionRecord``
- **Analysis input**: ``FeedbackStats``, ``FeedbackHistory``,
  ``CollaborationData``, ``AnalysisContext``
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from copilot.exceptions import ValidationError
from copilot.utils import ensure_utc, parse_timestamp, utc_now


# =============================================================================
# ENUMS
# =============================================================================


class ContentStatus(Enum):
    """Publication status of a content item."""

    DRAFT = "draft"
    PUBLISHED = "published"


class SuggestionStatus(Enum):
    """Lifecycle status of a persisted suggestion.

    Transitions:
        PENDING -> APPROVED -> IMPLEMENTED
        PENDING -> REJECTED
        PENDING -> IMPLEMENTED
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IMPLEMENTED = "implemented"

    @property
    def is_terminal(self) -> bool:
        """Check if status is terminal (no further transitions allowed)."""
        return self in {SuggestionStatus.REJECTED, SuggestionStatus.IMPLEMENTED}


class PriorityWeight(Enum):
    """Global confidence adjustment mode applied after analysis."""

    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"


class Rating(Enum):
    """Three-level scale for implementation complexity and expected impact."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ContentLengthFilter(Enum):
    """Word-count bucket used to pre-filter content before analysis."""

    ALL = "all"
    SHORT = "short"  # < 500 words
    MEDIUM = "medium"  # 500-2000 words
    LONG = "long"  # > 2000 words


# =============================================================================
# CONTENT
# =============================================================================


@dataclass(frozen=True)
class ContentItem:
    """An article read from the content store.

    Frozen: agents must never mutate the items they analyze.

    Attributes:
        id: Primary key in the store.
        title: Article title.
        content: Full body text.
        status: ``draft`` or ``published``.
        views: Non-negative view counter.
        created_at: Creation timestamp (timezone-aware UTC).
        excerpt: Optional summary / meta description.
        category: Optional category name.
        image_url: Optional featured image.
        slug: Optional URL slug.
    """

    id: str
    title: str
    content: str
    status: ContentStatus
    views: int
    created_at: datetime
    excerpt: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    slug: Optional[str] = None

    def __post_init__(self) -> None:
        if self.views < 0:
            raise ValidationError(f"views must be >= 0, got {self.views}")
        if self.created_at.tzinfo is None:
            object.__setattr__(self, "created_at", ensure_utc(self.created_at))

    @property
    def is_published(self) -> bool:
        return self.status is ContentStatus.PUBLISHED

    @property
    def word_count(self) -> int:
        return len(self.content.split()) if self.content else 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ContentItem":
        """Build an item from a store row (``articles`` table)."""
        if not row.get("id"):
            raise ValidationError("article row must have 'id'")
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            content=row.get("content") or "",
            status=ContentStatus(row.get("status") or "draft"),
            views=int(row.get("views") or 0),
            created_at=parse_timestamp(row["created_at"]),
            excerpt=row.get("excerpt"),
            category=row.get("category"),
            image_url=row.get("image_url"),
            slug=row.get("slug"),
        )

    def summary(self) -> Dict[str, Any]:
        """Compact metadata used when embedding items in AI prompts."""
        return {
            "id": self.id,
            "title": self.title,
            "views": self.views,
            "created_at": self.created_at.isoformat(),
            "category": self.category,
        }


@dataclass(frozen=True)
class AnalysisMetrics:
    """Five independent per-item scores, each in ``[0, 1]``.

    Derived on demand by :mod:`copilot.metrics`; never persisted.
    """

    engagement_score: float
    freshness_score: float
    quality_score: float
    trending_score: float
    seo_score: float

    def as_dict(self) -> Dict[str, float]:
        return dataclasses.asdict(self)


# =============================================================================
# AGENT CONFIGURATION
# =============================================================================


@dataclass
class AgentConfig:
    """Tunables owned by one agent instance.

    Known fields are typed; anything else (strategy-specific extensions)
    lands in ``extras``.  ``None`` means "use the strategy default".
    """

    # Core AI settings
    ai_model: Optional[str] = None
    prompt_template: Optional[str] = None

    # Behaviour
    confidence_threshold: Optional[float] = None
    priority_weight: Optional[PriorityWeight] = None
    max_suggestions: Optional[int] = None
    learning_enabled: bool = False

    # Scheduling hints
    auto_run_enabled: bool = False
    run_frequency: Optional[str] = None
    trigger_on_new_content: bool = False
    trigger_on_view_threshold: bool = False
    view_threshold: Optional[int] = None

    # Collaboration
    collaboration_enabled: bool = False
    collaboration_partners: Optional[str] = None

    # Content filters
    category_filter: Optional[str] = None
    min_content_age_hours: Optional[float] = None
    max_content_age_days: Optional[float] = None
    content_length_filter: Optional[ContentLengthFilter] = None

    # Strategy thresholds
    min_views_threshold: Optional[int] = None
    freshness_threshold_days: Optional[float] = None
    quality_threshold: Optional[float] = None

    # Escape hatch for strategy-specific keys
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def known_fields(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in dataclasses.fields(cls) if f.name != "extras")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AgentConfig":
        """Build a config from a plain mapping; unknown keys go to ``extras``."""
        data = dict(data or {})
        known = set(cls.known_fields())
        kwargs: Dict[str, Any] = {}
        extras: Dict[str, Any] = dict(data.pop("extras", None) or {})
        for key, value in data.items():
            if key in known:
                kwargs[key] = value
            else:
                extras[key] = value

        if isinstance(kwargs.get("priority_weight"), str):
            try:
                kwargs["priority_weight"] = PriorityWeight(kwargs["priority_weight"])
            except ValueError as exc:
                raise ValidationError(
                    f"Invalid priority_weight '{kwargs['priority_weight']}'"
                ) from exc
        if isinstance(kwargs.get("content_length_filter"), str):
            try:
                kwargs["content_length_filter"] = ContentLengthFilter(
                    kwargs["content_length_filter"]
                )
            except ValueError as exc:
                raise ValidationError(
                    f"Invalid content_length_filter '{kwargs['content_length_filter']}'"
                ) from exc
        return cls(extras=extras, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to a plain mapping (enums as values, extras inlined)."""
        result: Dict[str, Any] = {}
        for name in self.known_fields():
            value = getattr(self, name)
            result[name] = value.value if isinstance(value, Enum) else value
        result.update(self.extras)
        return result

    def merged(self, updates: Dict[str, Any]) -> "AgentConfig":
        """Shallow merge, last write wins per key."""
        combined = self.to_dict()
        combined.update(updates)
        return AgentConfig.from_dict(combined)

    def get(self, key: str, default: Any = None) -> Any:
        """Read a known field or an extra, falling back to *default* when unset."""
        if key in self.known_fields():
            value = getattr(self, key)
        else:
            value = self.extras.get(key)
        return default if value is None else value


# =============================================================================
# SUGGESTIONS
# =============================================================================


@dataclass
class Suggestion:
    """A scored, reasoned recommendation produced by an agent.

    Attributes:
        target_type: Free-form target (``hero_section``, ``article``, ...).
        suggestion_data: Opaque payload interpreted by action executors.
        reasoning: Human-readable explanation.
        confidence_score: Trust estimate in ``[0, 1]``.
        priority: 1 (critical) .. 5 (low).
        target_id: Optional identifier within the target.
        expires_at: Optional expiry (timezone-aware UTC).
        agent_id: Name of the agent instance that produced it.
        agent_type: Registered type of that agent.
    """

    target_type: str
    suggestion_data: Dict[str, Any]
    reasoning: str
    confidence_score: float
    priority: int
    target_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    agent_id: Optional[str] = None
    agent_type: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_score <= 1.0:
            raise ValidationError(
                f"confidence_score must be in [0, 1], got {self.confidence_score}"
            )
        if self.priority not in range(1, 6):
            raise ValidationError(f"priority must be in 1..5, got {self.priority}")

    @property
    def ranking_score(self) -> float:
        """``confidence * (6 - priority)``: lower numeric priority wins ties."""
        return self.confidence_score * (6 - self.priority)

    def with_confidence(self, confidence: float) -> "Suggestion":
        return dataclasses.replace(self, confidence_score=confidence)

    def to_record(self) -> Dict[str, Any]:
        """Row for the ``ai_suggestions`` table (status starts pending)."""
        return {
            "agent_id": self.agent_id,
            "agent_type": self.agent_type,
            "type": self.target_type,
            "title": self.suggestion_data.get("article_title"),
            "target_type": self.target_type,
            "target_id": self.target_id,
            "suggestion_data": self.suggestion_data,
            "reasoning": self.reasoning,
            "confidence_score": self.confidence_score,
            "priority": self.priority,
            "status": SuggestionStatus.PENDING.value,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass
class ReasoningStep:
    """One documented step of an enhanced suggestion's reasoning."""

    step: str
    evidence: List[str]
    confidence: float
    weight: float = 1.0

    def render(self) -> str:
        return (
            f"{self.step}: {', '.join(self.evidence)} "
            f"(confidence: {self.confidence * 100:.0f}%)"
        )


@dataclass
class EnhancedSuggestion(Suggestion):
    """A suggestion decorated with structured reasoning and risk analysis."""

    reasoning_steps: List[ReasoningStep] = field(default_factory=list)
    alternative_approaches: List[str] = field(default_factory=list)
    potential_risks: List[str] = field(default_factory=list)
    implementation_complexity: Rating = Rating.MEDIUM
    expected_impact: Rating = Rating.MEDIUM
    related_suggestions: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        record = super().to_record()
        record["suggestion_data"] = {
            **self.suggestion_data,
            "reasoning_steps": [dataclasses.asdict(s) for s in self.reasoning_steps],
            "alternative_approaches": list(self.alternative_approaches),
            "potential_risks": list(self.potential_risks),
            "implementation_complexity": self.implementation_complexity.value,
            "expected_impact": self.expected_impact.value,
            "related_suggestions": list(self.related_suggestions),
        }
        return record


@dataclass
class SuggestionRecord:
    """A suggestion as persisted in the store, with its lifecycle fields."""

    id: str
    target_type: str
    suggestion_data: Dict[str, Any]
    reasoning: str
    confidence_score: float
    priority: int
    status: SuggestionStatus = SuggestionStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    agent_id: Optional[str] = None
    agent_type: Optional[str] = None
    type: Optional[str] = None
    title: Optional[str] = None
    target_id: Optional[str] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SuggestionRecord":
        if not row.get("id"):
            raise ValidationError("suggestion row must have 'id'")
        return cls(
            id=str(row["id"]),
            target_type=row.get("target_type") or "",
            suggestion_data=row.get("suggestion_data") or {},
            reasoning=row.get("reasoning") or "",
            confidence_score=float(row.get("confidence_score") or 0.0),
            priority=int(row.get("priority") or 5),
            status=SuggestionStatus(row.get("status") or "pending"),
            created_at=(
                parse_timestamp(row["created_at"])
                if row.get("created_at")
                else utc_now()
            ),
            agent_id=row.get("agent_id"),
            agent_type=row.get("agent_type"),
            type=row.get("type") or row.get("target_type"),
            title=row.get("title"),
            target_id=row.get("target_id"),
            expires_at=(
                parse_timestamp(row["expires_at"]) if row.get("expires_at") else None
            ),
        )


# =============================================================================
# ANALYSIS INPUT
# =============================================================================


@dataclass
class FeedbackStats:
    """Historical review outcomes for one ``(target_type, agent_type)`` pair."""

    approved: int = 0
    rejected: int = 0

    @property
    def total(self) -> int:
        return self.approved + self.rejected

    @property
    def approval_rate(self) -> float:
        return self.approved / self.total if self.total else 0.0


@dataclass
class FeedbackHistory:
    """Approval/rejection counts keyed by ``(target_type, agent_type)``."""

    stats: Dict[Tuple[str, str], FeedbackStats] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: List[Dict[str, Any]]) -> "FeedbackHistory":
        """Build from reviewed suggestion rows (implemented counts as approved)."""
        history = cls()
        for row in rows:
            status = row.get("status")
            if status not in ("approved", "implemented", "rejected"):
                continue
            history.record(
                row.get("target_type") or "",
                row.get("agent_type") or "",
                approved=status != "rejected",
            )
        return history

    def stats_for(self, target_type: str, agent_type: str) -> FeedbackStats:
        return self.stats.get((target_type, agent_type), FeedbackStats())

    def record(self, target_type: str, agent_type: str, approved: bool) -> None:
        entry = self.stats.setdefault((target_type, agent_type), FeedbackStats())
        if approved:
            entry.approved += 1
        else:
            entry.rejected += 1


@dataclass
class CollaborationData:
    """Suggestions already produced by other agents in the same run."""

    other_agents: List[str] = field(default_factory=list)
    shared_suggestions: List[Suggestion] = field(default_factory=list)


@dataclass
class AnalysisContext:
    """Input to ``Agent.analyze``.

    Attributes:
        items: Content items to analyze.
        peer_items: Peer set for relative metrics (defaults to ``items``).
        collaboration: Other agents' output for consensus boosting.
        history: Historical review outcomes for learning adjustments.
        now: Clock override for deterministic analysis.
    """

    items: List[ContentItem] = field(default_factory=list)
    peer_items: Optional[List[ContentItem]] = None
    collaboration: Optional[CollaborationData] = None
    history: Optional[FeedbackHistory] = None
    now: Optional[datetime] = None

    @property
    def peers(self) -> List[ContentItem]:
        return self.peer_items if self.peer_items is not None else self.items

    @property
    def clock(self) -> datetime:
        return ensure_utc(self.now) if self.now is not None else utc_now()

    def cache_fingerprint(self) -> Dict[str, Any]:
        """Stable summary used to key cached agent results."""
        return {
            "items": sorted((i.id, i.views, i.excerpt or "") for i in self.items),
            "peers": sorted(i.id for i in self.peers),
        }


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "ContentStatus",
    "SuggestionStatus",
    "PriorityWeight",
    "Rating",
    "ContentLengthFilter",
    "ContentItem",
    "AnalysisMetrics",
    "AgentConfig",
    "Suggestion",
    "ReasoningStep",
    "EnhancedSuggestion",
    "SuggestionRecord",
    "FeedbackStats",
    "FeedbackHistory",
    "CollaborationData",
    "AnalysisContext",
]
