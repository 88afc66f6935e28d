"""
Data Models

Records shared by the clustering engine and the stage coordinator. Every
record serializes to a plain JSON-compatible dict so the storage backends can
persist it without knowing its type.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


CLUSTER_STATUSES = ('new', 'active', 'stale', 'archived')
STAGE_STATUSES = ('idle', 'running', 'completed', 'failed')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO timestamps written by this package or by upstream collectors."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Item:
    """A short document as handed over by the ingestion collaborator."""

    id: str
    source: str
    title: str = ''
    text: str = ''
    published_at: Optional[datetime] = None
    embedding: Optional[List[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'source': self.source,
            'title': self.title,
            'text': self.text,
            'published_at': to_iso(self.published_at),
            'embedding': list(self.embedding) if self.embedding is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Item':
        embedding = data.get('embedding')
        return cls(
            id=str(data['id']),
            source=data.get('source', ''),
            title=data.get('title') or '',
            text=data.get('text') or '',
            published_at=parse_datetime(data.get('published_at')),
            embedding=[float(v) for v in embedding] if embedding is not None else None,
        )


@dataclass(frozen=True)
class ItemEmbedding:
    item_id: str
    embedding: List[float]
    model: str = ''
    created_at: Optional[datetime] = None


@dataclass
class Cluster:
    """A topic cluster and its derived metadata."""

    id: str
    title: str = ''
    summary: Optional[str] = None
    article_ids: List[str] = field(default_factory=list)
    social_post_ids: List[str] = field(default_factory=list)
    centroid: Optional[List[float]] = None
    article_count: int = 0
    source_count: int = 0
    top_sources: List[str] = field(default_factory=list)
    importance: int = 0
    status: str = 'new'
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_analyzed_at: Optional[datetime] = None

    def needs_analysis(self) -> bool:
        """Unanalyzed clusters and clusters updated since their last analysis."""
        if self.last_analyzed_at is None:
            return True
        return self.updated_at > self.last_analyzed_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'summary': self.summary,
            'article_ids': list(self.article_ids),
            'social_post_ids': list(self.social_post_ids),
            'centroid': list(self.centroid) if self.centroid is not None else None,
            'article_count': self.article_count,
            'source_count': self.source_count,
            'top_sources': list(self.top_sources),
            'importance': self.importance,
            'status': self.status,
            'created_at': to_iso(self.created_at),
            'updated_at': to_iso(self.updated_at),
            'last_analyzed_at': to_iso(self.last_analyzed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Cluster':
        centroid = data.get('centroid')
        status = data.get('status', 'new')
        if status not in CLUSTER_STATUSES:
            raise ValueError(f"Unknown cluster status: {status}")
        return cls(
            id=data['id'],
            title=data.get('title') or '',
            summary=data.get('summary'),
            article_ids=list(data.get('article_ids') or []),
            social_post_ids=list(data.get('social_post_ids') or []),
            centroid=[float(v) for v in centroid] if centroid is not None else None,
            article_count=int(data.get('article_count', 0)),
            source_count=int(data.get('source_count', 0)),
            top_sources=list(data.get('top_sources') or []),
            importance=int(data.get('importance', 0)),
            status=status,
            created_at=parse_datetime(data.get('created_at')) or utcnow(),
            updated_at=parse_datetime(data.get('updated_at')) or utcnow(),
            last_analyzed_at=parse_datetime(data.get('last_analyzed_at')),
        )


@dataclass(frozen=True)
class StageLease:
    lease_id: str
    acquired_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {'lease_id': self.lease_id, 'acquired_at': to_iso(self.acquired_at)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StageLease':
        return cls(lease_id=data['lease_id'], acquired_at=parse_datetime(data['acquired_at']))


@dataclass
class StageState:
    stage: str
    status: str = 'idle'
    last_run_at: Optional[datetime] = None
    last_completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stage': self.stage,
            'status': self.status,
            'last_run_at': to_iso(self.last_run_at),
            'last_completed_at': to_iso(self.last_completed_at),
            'error': self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StageState':
        return cls(
            stage=data['stage'],
            status=data.get('status', 'idle'),
            last_run_at=parse_datetime(data.get('last_run_at')),
            last_completed_at=parse_datetime(data.get('last_completed_at')),
            error=data.get('error'),
        )
