"""Core data models for citizens, complaints, votes, categories and the audit timeline."""
import uuid
from datetime import datetime, timedelta

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


USER_ROLES: tuple[str, ...] = (
	"citizen",
	"admin",
	"worker",
)

PRIVILEGED_ROLES: frozenset[str] = frozenset({"admin", "worker"})

COMPLAINT_STATUSES: tuple[str, ...] = (
	"Submitted",
	"Assigned",
	"In Progress",
	"Resolved",
	"Closed",
)

CLOSED_STATUSES: tuple[str, ...] = (
	"Resolved",
	"Closed",
)

COMPLAINT_PRIORITIES: tuple[str, ...] = (
	"Low",
	"Medium",
	"High",
)

RESOLUTION_TYPES: tuple[str, ...] = (
	"Temporary",
	"Permanent",
)

OTP_PURPOSES: tuple[str, ...] = (
	"ACCOUNT_VERIFICATION",
)

# Largest value an INTEGER column holds on every supported backend.
MAX_INTEGER_ID = 2**63 - 1


def _one_of(column: str, values, nullable: bool = False) -> str:
	clause = f"{column} IN (" + ",".join(f"'{value}'" for value in values) + ")"
	return f"{column} IS NULL OR {clause}" if nullable else clause


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	name = db.Column(db.String(150), nullable=False)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role = db.Column(db.String(20), nullable=False, default="citizen", index=True)
	points = db.Column(db.Integer, nullable=False, default=0)
	is_verified = db.Column(db.Boolean, default=False, nullable=False)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint(_one_of("role", USER_ROLES), name="ck_user_role_valid"),
		db.CheckConstraint("points >= 0", name="ck_user_points_non_negative"),
	)

	complaints = db.relationship(
		"Complaint",
		back_populates="reporter",
		foreign_keys="Complaint.user_id",
		lazy="dynamic",
	)
	votes = db.relationship("Vote", back_populates="voter", lazy="dynamic")
	one_time_codes = db.relationship("OneTimeCode", back_populates="user", lazy="dynamic")

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_privileged(self) -> bool:
		return self.role in PRIVILEGED_ROLES


class OneTimeCode(db.Model):
	__tablename__ = "one_time_codes"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	purpose = db.Column(db.String(50), nullable=False, default="ACCOUNT_VERIFICATION")
	code_hash = db.Column(db.String(255), nullable=False)
	expires_at = db.Column(db.DateTime, nullable=False)
	consumed_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(_one_of("purpose", OTP_PURPOSES), name="ck_one_time_code_purpose"),
	)

	user = db.relationship("User", back_populates="one_time_codes")

	@staticmethod
	def issue(user, code: str, ttl_seconds: int = 600, purpose: str = "ACCOUNT_VERIFICATION"):
		record = OneTimeCode(
			user=user,
			purpose=purpose,
			code_hash=generate_password_hash(code, method="pbkdf2:sha256", salt_length=12),
			expires_at=datetime.utcnow() + timedelta(seconds=ttl_seconds),
		)
		db.session.add(record)
		return record

	@property
	def is_expired(self) -> bool:
		return datetime.utcnow() > self.expires_at

	def verify(self, candidate: str) -> bool:
		if self.consumed_at or self.is_expired:
			return False
		return check_password_hash(self.code_hash, candidate or "")


class Category(db.Model):
	__tablename__ = "categories"

	id = db.Column(db.Integer, primary_key=True)
	name = db.Column(db.String(120), unique=True, nullable=False, index=True)
	department = db.Column(db.String(120), nullable=True)
	sla_hours = db.Column(db.Integer, nullable=False, default=24)
	base_priority = db.Column(db.Integer, nullable=False, default=1)

	complaints = db.relationship("Complaint", back_populates="category", lazy="dynamic")


class Complaint(db.Model):
	__tablename__ = "complaints"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	# Integer id carried over from the pre-migration store; lookups fall back to it.
	legacy_id = db.Column(db.Integer, nullable=True, unique=True, index=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
	title = db.Column(db.String(255), nullable=False)
	description = db.Column(db.Text, nullable=False, default="")
	latitude = db.Column(db.Float, nullable=True)
	longitude = db.Column(db.Float, nullable=True)
	address = db.Column(db.String(500), nullable=False, default="")
	photo_url = db.Column(db.String(1024), nullable=True)
	status = db.Column(db.String(20), nullable=False, default="Submitted", index=True)
	priority = db.Column(db.String(10), nullable=False, default="Medium")
	priority_score = db.Column(db.Float, nullable=False, default=0)
	assigned_to_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
	resolution_photo_url = db.Column(db.String(1024), nullable=True)
	resolution_type = db.Column(db.String(20), nullable=True)
	upvotes = db.Column(db.Integer, nullable=False, default=0)
	is_escalated = db.Column(db.Boolean, nullable=False, default=False, index=True)
	is_public = db.Column(db.Boolean, nullable=False, default=False, index=True)
	is_anonymous = db.Column(db.Boolean, nullable=False, default=False)
	sla_deadline = db.Column(db.DateTime, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(
		db.DateTime,
		default=datetime.utcnow,
		onupdate=datetime.utcnow,
		nullable=False,
	)
	resolved_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint(
			_one_of("status", COMPLAINT_STATUSES),
			name="ck_complaint_status_valid",
		),
		db.CheckConstraint(
			_one_of("priority", COMPLAINT_PRIORITIES),
			name="ck_complaint_priority_valid",
		),
		db.CheckConstraint(
			_one_of("resolution_type", RESOLUTION_TYPES, nullable=True),
			name="ck_complaint_resolution_type",
		),
		db.CheckConstraint("upvotes >= 0", name="ck_complaint_upvotes_non_negative"),
		db.Index("ix_complaints_geo", "latitude", "longitude"),
		db.Index("ix_complaints_public_created", "is_public", "created_at"),
		db.Index("ix_complaints_user_created", "user_id", "created_at"),
	)

	reporter = db.relationship("User", back_populates="complaints", foreign_keys=[user_id])
	assignee = db.relationship("User", foreign_keys=[assigned_to_id])
	category = db.relationship("Category", back_populates="complaints")
	votes = db.relationship("Vote", back_populates="complaint", lazy="dynamic")
	timeline = db.relationship(
		"TimelineEvent",
		back_populates="complaint",
		order_by="TimelineEvent.created_at.desc()",
		lazy="dynamic",
	)

	@property
	def category_name(self) -> str:
		return self.category.name if self.category else "General"

	@staticmethod
	def public_query():
		"""Restrict complaints to those the reporter shared with the community."""
		return Complaint.query.filter(Complaint.is_public.is_(True))


class Vote(db.Model):
	__tablename__ = "votes"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.UniqueConstraint("complaint_id", "user_id", name="uq_vote_complaint_user"),
	)

	complaint = db.relationship("Complaint", back_populates="votes")
	voter = db.relationship("User", back_populates="votes")


class TimelineEvent(db.Model):
	__tablename__ = "timeline_events"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
	action = db.Column(db.String(50), nullable=False, index=True)
	details = db.Column(db.String(500), nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.Index("ix_timeline_complaint_created", "complaint_id", "created_at"),
	)

	complaint = db.relationship("Complaint", back_populates="timeline")
	actor = db.relationship("User")
