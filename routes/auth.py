"""Account registration, verification and session blueprint."""
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from sqlalchemy.exc import IntegrityError
from wtforms import PasswordField, StringField
from wtforms import ValidationError as FormValidationError
from wtforms.validators import DataRequired, Email, Length

from extensions import db, notifier
from models import User
from utils import email_service
from utils.errors import AuthenticationError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from utils.gamification import leaderboard, profile_payload
from utils.security import password_meets_policy
from utils.verification import get_verifier

auth_bp = Blueprint("auth", __name__, url_prefix="/api/users")


class JsonForm(FlaskForm):
    """FlaskForm fed from JSON bodies; sessions use SameSite cookies instead of CSRF tokens."""

    class Meta:
        csrf = False


class RegistrationForm(JsonForm):
    name = StringField("Name", validators=[DataRequired(), Length(max=150)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=12, max=128)])

    def validate_password(self, field):
        password_ok, reason = password_meets_policy(field.data or "")
        if not password_ok:
            raise FormValidationError(reason)


class LoginForm(JsonForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])


class VerifyCodeForm(JsonForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    otp = StringField("OTP", validators=[DataRequired(), Length(min=4, max=12)])


class EmailOnlyForm(JsonForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])


def _validated(form: JsonForm) -> JsonForm:
    if not form.validate_on_submit():
        field, messages = next(iter(form.errors.items()))
        raise ValidationError(f"{field}: {messages[0]}", payload={"errors": form.errors})
    return form


def _normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def _user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "points": user.points or 0,
        "is_verified": bool(user.is_verified),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _start_session(user: User) -> None:
    login_user(user, remember=True, duration=current_app.config.get("REMEMBER_COOKIE_DURATION"))
    session.permanent = True
    user.last_login_at = datetime.utcnow()
    db.session.commit()


def _unverified_user(email: str) -> User:
    user = User.query.filter_by(email=email).first()
    if not user:
        raise NotFoundError("User not found")
    if user.is_verified:
        raise ValidationError("Account is already verified")
    return user


@auth_bp.route("/register", methods=["POST"])
def register():
    form = _validated(RegistrationForm())
    email = _normalize_email(form.email.data)
    verifier = get_verifier()

    existing = User.query.filter_by(email=email).first()
    if existing:
        if existing.is_verified:
            raise ConflictError("Email already in use")
        # Unverified accounts may re-register; the latest details win and a new code goes out.
        existing.name = form.name.data.strip()
        existing.set_password(form.password.data)
        db.session.commit()
        verifier.start(existing)
        return jsonify(
            {
                "status": "success",
                "message": "Verification code resent. Please verify to complete registration.",
                "data": {"email": email, "requires_otp": verifier.requires_challenge},
            }
        ), 200

    user = User(name=form.name.data.strip(), email=email, role="citizen", is_verified=False, is_active=True)
    user.set_password(form.password.data)
    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already in use")

    current_app.logger.info("User registered", extra={"user_id": user.id, "verifier": verifier.name})
    verifier.start(user)
    message = (
        "Registration successful! Please check your email for the verification code."
        if verifier.requires_challenge
        else "Registration successful! You can now log in."
    )
    return jsonify(
        {
            "status": "success",
            "message": message,
            "data": {"email": email, "requires_otp": verifier.requires_challenge},
        }
    ), 201


@auth_bp.route("/verify-otp", methods=["POST"])
def verify_otp():
    form = _validated(VerifyCodeForm())
    user = _unverified_user(_normalize_email(form.email.data))
    get_verifier().confirm(user, form.otp.data)
    _start_session(user)
    current_app.logger.info("User verified", extra={"user_id": user.id})
    notifier.submit(email_service.send_welcome_email, user.id)
    return jsonify(
        {"status": "success", "message": "Account verified successfully!", "data": {"user": _user_payload(user)}}
    ), 200


@auth_bp.route("/resend-otp", methods=["POST"])
def resend_otp():
    form = _validated(EmailOnlyForm())
    user = _unverified_user(_normalize_email(form.email.data))
    get_verifier().start(user)
    return jsonify({"status": "success", "message": "Verification code resent. Check your email."}), 200


@auth_bp.route("/login", methods=["POST"])
def login():
    form = _validated(LoginForm())
    email = _normalize_email(form.email.data)
    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(form.password.data):
        current_app.logger.info("Login failed", extra={"ip_address": request.remote_addr})
        raise AuthenticationError("Incorrect email or password")

    if not user.is_active:
        raise ForbiddenError("Your account is inactive. Please contact support.")

    if not user.is_verified:
        verifier = get_verifier()
        verifier.start(user)
        if verifier.requires_challenge:
            raise ForbiddenError(
                "Account not verified. A new verification code has been sent to your email.",
                payload={"email": email, "requires_otp": True},
            )

    _start_session(user)
    current_app.logger.info("User logged in", extra={"user_id": user.id})
    return jsonify({"status": "success", "data": {"user": _user_payload(user)}}), 200


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    user_id = current_user.id
    session.clear()
    # Runs after the clear so the remember cookie is still flagged for deletion.
    logout_user()
    current_app.logger.info("User logged out", extra={"user_id": user_id})
    return jsonify({"status": "success", "message": "Logged out"}), 200


@auth_bp.route("/profile", methods=["GET"])
@login_required
def profile():
    return jsonify({"status": "success", "data": {"user": profile_payload(current_user)}}), 200


@auth_bp.route("/leaderboard", methods=["GET"])
def get_leaderboard():
    return jsonify({"status": "success", "data": leaderboard()}), 200
