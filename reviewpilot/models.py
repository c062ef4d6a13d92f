# reviewpilot/models.py
from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, Text
import datetime

from reviewpilot.db import Base


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class ReviewRecord(Base):
    __tablename__ = "reviews"

    # creation time in epoch milliseconds, bumped on collision
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    source = Column(String(64), nullable=False, default="manual")
    status = Column(String(32), nullable=False, default="new")
    generated_prompt = Column(Text, nullable=True)
    prompt_draft = Column(Text, nullable=True)
    generated_code = Column(Text, nullable=True)
    code_type = Column(String(16), nullable=True)
    code_description = Column(Text, nullable=True)


class DeploymentRecord(Base):
    __tablename__ = "deployments"

    id = Column(Integer, primary_key=True, index=True)
    review_id = Column(BigInteger, ForeignKey("reviews.id", ondelete="SET NULL"), nullable=True, index=True)
    site_url = Column(String(512), nullable=False, index=True)
    user_id = Column(String(128), nullable=True)
    code_type = Column(String(16), nullable=False)
    status = Column(String(32), nullable=False, default="active")
    deployed_at = Column(DateTime, default=_utcnow, nullable=False)
    response_json = Column(Text, nullable=True)
