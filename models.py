import sqlite3
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _now():
    return datetime.now(timezone.utc)


class AccessCode(db.Model):
    __tablename__ = "access_codes"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(255), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=_now, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    recommendations = db.relationship(
        "RecommendedDesign",
        back_populates="access_code_ref",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "created_at": self.created_at.isoformat(),
            "is_active": self.is_active,
        }


class RecommendedDesign(db.Model):
    __tablename__ = "recommended_designs"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    image_url = db.Column(db.Text, nullable=False)  # URL 또는 data URI
    access_code = db.Column(
        db.String(255),
        db.ForeignKey("access_codes.code", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime, default=_now, nullable=False)

    access_code_ref = db.relationship("AccessCode", back_populates="recommendations")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "image_url": self.image_url,
            "access_code": self.access_code,
            "created_at": self.created_at.isoformat(),
        }


class Submission(db.Model):
    __tablename__ = "submissions"

    id = db.Column(db.Integer, primary_key=True)
    # 코드가 삭제돼도 제출물은 남아야 하므로 FK 제약을 걸지 않는다
    access_code = db.Column(db.String(255), nullable=False, index=True)
    comment = db.Column(db.Text, default="")
    generated_image_url = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=_now, nullable=False)

    images = db.relationship(
        "SubmissionImage",
        order_by="SubmissionImage.image_order",
        cascade="all, delete-orphan",
    )

    @property
    def original_images(self):
        return [img.image_url for img in self.images]

    def to_dict(self):
        return {
            "id": self.id,
            "access_code": self.access_code,
            "comment": self.comment or "",
            "generated_image_url": self.generated_image_url,
            "created_at": self.created_at.isoformat(),
            "original_images": self.original_images,
        }


class SubmissionImage(db.Model):
    __tablename__ = "submission_images"

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(
        db.Integer,
        db.ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_url = db.Column(db.Text, nullable=False)
    image_order = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=_now, nullable=False)
