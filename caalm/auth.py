# caalm/auth.py
from flask import Blueprint, request, jsonify, current_app
from flask_login import LoginManager, login_user, logout_user, current_user
import click

from caalm import db
from caalm.models.user import User
from caalm.models.auth_event import AuthEvent

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth", cli_group=None)
login_manager = LoginManager()

TWO_FACTOR_COOKIE = "2fa_completed"
TWO_FACTOR_COOKIE_MAX_AGE = 60 * 60 * 24 * 30  # 30 days


# ------------------------------------------------------
# Flask-Login user loader
# Flask-Login stores user.id (integer), not the account id.
# ------------------------------------------------------
@login_manager.user_loader
def load_user(user_id):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


# ------------------------------------------------------
# Auth event logger
# ------------------------------------------------------
def log_auth_event(user_id: str, status: str):
    try:
        ip_raw = request.headers.get("X-Forwarded-For", request.remote_addr) or ""
        ip = ip_raw.split(",")[0].strip()
        ua = (request.headers.get("User-Agent") or "")[:255]
        entry = AuthEvent(user_id=(user_id or "unknown")[:64], ip=ip, status=status, user_agent=ua)
        db.session.add(entry)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Could not record auth event %s for %s", status, user_id)


def find_user(account_id) -> User | None:
    if not account_id:
        return None
    return User.query.filter_by(account_id=str(account_id)).first()


# ------------------------------------------------------
# Two-factor session completion
# ------------------------------------------------------
def complete_two_factor(user: User, response):
    """Log the user in and mark the browser as having passed 2FA."""
    login_user(user)
    response.set_cookie(
        TWO_FACTOR_COOKIE,
        "true",
        max_age=TWO_FACTOR_COOKIE_MAX_AGE,
        httponly=True,
        secure=current_app.config["SESSION_COOKIE_SECURE"],
        samesite="Lax",
    )
    return response


def clear_two_factor(response):
    response.delete_cookie(TWO_FACTOR_COOKIE, httponly=True, samesite="Lax")
    return response


@auth_bp.route("/check-2fa-status", methods=["GET"])
def check_2fa_status():
    if not current_user.is_authenticated:
        return jsonify({"error": "No session found"}), 401

    try:
        user = db.session.get(User, int(current_user.id))
        if not user:
            return jsonify({"error": "User not found"}), 404

        has_2fa = user.has_2fa
        response = jsonify({
            "has2FA": has_2fa,
            "needsSetup": not has_2fa,
            "user": {
                "id": user.id,
                "accountId": user.account_id,
                "email": user.email,
                "fullName": user.full_name,
                "role": user.role,
                "department": user.department,
            },
        })
        if has_2fa:
            complete_two_factor(user, response)
        return response
    except Exception:
        current_app.logger.exception("Error checking 2FA status")
        return jsonify({"error": "Failed to check 2FA status"}), 500


@auth_bp.route("/logout", methods=["POST"])
def logout():
    if current_user.is_authenticated:
        log_auth_event(current_user.account_id, "logout")
    logout_user()
    return clear_two_factor(jsonify({"success": True}))


# ------------------------------------------------------
# Seed users from the command line
# ------------------------------------------------------
def create_user(account_id, email, full_name=None, role="user", department=None):
    if find_user(account_id):
        return None

    user = User(
        account_id=account_id,
        email=email,
        full_name=full_name,
        role=role or "user",
        department=department,
    )
    db.session.add(user)
    db.session.commit()
    return user


@auth_bp.cli.command("create-user")
@click.argument("account_id")
@click.argument("email")
@click.option("--name", "full_name", default=None, help="Display name.")
@click.option("--role", default="user", show_default=True)
@click.option("--department", default=None)
def create_user_command(account_id, email, full_name, role, department):
    """Create a user record that can enroll a TOTP factor."""
    user = create_user(account_id, email, full_name, role, department)
    if user is None:
        raise click.ClickException(f"User {account_id} already exists.")
    click.echo(f"Created user {user.account_id} <{user.email}>")
