# reviewpilot/db.py
import os
import json
import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import create_engine, func
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.exc import SQLAlchemyError

from reviewpilot import monitoring

# Default dev DB — on Vercel api/index.py sets DATABASE_URL to /tmp before import
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./review_pilot.db")

# review dict key -> ReviewRecord column
REVIEW_FIELDS = {
    "text": "text",
    "source": "source",
    "status": "status",
    "generatedPrompt": "generated_prompt",
    "promptDraft": "prompt_draft",
    "generatedCode": "generated_code",
    "codeType": "code_type",
    "codeDescription": "code_description",
}


def _make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
Base = declarative_base()


def reconfigure(url: str):
    """Reconfigure the DB engine and session factory at runtime (for tests)."""
    global engine, SessionLocal
    engine.dispose()
    engine = _make_engine(url)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db():
    import reviewpilot.models as models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def _iso(ts: Optional[datetime.datetime]) -> Optional[str]:
    return ts.isoformat() + "Z" if ts is not None else None


def review_to_dict(rr) -> Dict[str, Any]:
    return {
        "id": rr.id,
        "text": rr.text,
        "createdAt": _iso(rr.created_at),
        "date": rr.created_at.strftime("%Y-%m-%d"),
        "time": rr.created_at.strftime("%H:%M"),
        "source": rr.source,
        "status": rr.status,
        "generatedPrompt": rr.generated_prompt,
        "promptDraft": rr.prompt_draft,
        "generatedCode": rr.generated_code,
        "codeType": rr.code_type,
        "codeDescription": rr.code_description,
    }


def deployment_to_dict(dr) -> Dict[str, Any]:
    return {
        "id": dr.id,
        "reviewId": dr.review_id,
        "siteUrl": dr.site_url,
        "userId": dr.user_id,
        "codeType": dr.code_type,
        "status": dr.status,
        "deployedAt": _iso(dr.deployed_at),
        "response": json.loads(dr.response_json or "null"),
    }


def _commit(db: Session, what: str):
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        monitoring.logger.exception("DB write failed", extra={"operation": what})
        raise


def save_review(review_id: int, text: str, source: str, created_at: datetime.datetime) -> Dict[str, Any]:
    from reviewpilot.models import ReviewRecord
    with SessionLocal() as db:
        rr = ReviewRecord(id=review_id, text=text, source=source, status="new", created_at=created_at)
        db.add(rr)
        _commit(db, "save_review")
        return review_to_dict(rr)


def max_review_id() -> int:
    from reviewpilot.models import ReviewRecord
    with SessionLocal() as db:
        return db.query(func.max(ReviewRecord.id)).scalar() or 0


def get_review(review_id: int) -> Optional[Dict[str, Any]]:
    from reviewpilot.models import ReviewRecord
    with SessionLocal() as db:
        rr = db.get(ReviewRecord, review_id)
        return review_to_dict(rr) if rr else None


def list_reviews() -> List[Dict[str, Any]]:
    """Newest first."""
    from reviewpilot.models import ReviewRecord
    with SessionLocal() as db:
        rows = db.query(ReviewRecord).order_by(ReviewRecord.id.desc()).all()
        return [review_to_dict(rr) for rr in rows]


def update_review(review_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Apply `updates` (review dict keys) in one transaction and return the stored
    row, or None when the review does not exist.
    """
    from reviewpilot.models import ReviewRecord
    unknown = set(updates) - set(REVIEW_FIELDS)
    if unknown:
        raise KeyError(f"Unknown review fields: {sorted(unknown)}")
    with SessionLocal() as db:
        rr = db.get(ReviewRecord, review_id)
        if rr is None:
            return None
        for key, value in updates.items():
            setattr(rr, REVIEW_FIELDS[key], value)
        _commit(db, "update_review")
        return review_to_dict(rr)


def delete_review(review_id: int) -> bool:
    from reviewpilot.models import ReviewRecord, DeploymentRecord
    with SessionLocal() as db:
        rr = db.get(ReviewRecord, review_id)
        if rr is None:
            return False
        # keep deployment history; only drop the link
        db.query(DeploymentRecord).filter(DeploymentRecord.review_id == review_id).update(
            {DeploymentRecord.review_id: None}
        )
        db.delete(rr)
        _commit(db, "delete_review")
        return True


def save_deployment(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    record should include:
      - site_url (str)
      - code_type (str)
      - review_id (int) optional
      - user_id (str) optional
      - response (any) upstream response body
    """
    from reviewpilot.models import DeploymentRecord
    with SessionLocal() as db:
        dr = DeploymentRecord(
            review_id=record.get("review_id"),
            site_url=record["site_url"],
            user_id=record.get("user_id"),
            code_type=record["code_type"],
            status=record.get("status", "active"),
            response_json=json.dumps(record.get("response")),
        )
        db.add(dr)
        _commit(db, "save_deployment")
        db.refresh(dr)
        return deployment_to_dict(dr)


def list_deployments() -> List[Dict[str, Any]]:
    """Newest first."""
    from reviewpilot.models import DeploymentRecord
    with SessionLocal() as db:
        rows = db.query(DeploymentRecord).order_by(DeploymentRecord.id.desc()).all()
        return [deployment_to_dict(dr) for dr in rows]
