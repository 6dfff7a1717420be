# caalm/routes/two_factor.py

from flask import Blueprint, request, jsonify, current_app, abort
from flask_login import current_user
from datetime import datetime
import base64
import io

import qrcode

from caalm import db, limiter
from caalm.auth import find_user, log_auth_event, complete_two_factor, clear_two_factor
from caalm.models.user import User
from caalm.totp import generate_secret, generate_code, verify_code, generate_qr_url

two_factor_bp = Blueprint("two_factor", __name__, url_prefix="/api/2fa")


def _store():
    return current_app.extensions["totp_setup_store"]


def _payload():
    return request.get_json(silent=True) or {}


def _clean_code(raw) -> str:
    return "" if raw is None else str(raw).strip()


def _qr_data_uri(otp_uri: str):
    try:
        img = qrcode.make(otp_uri)
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
    except Exception:
        current_app.logger.exception("QR rendering failed")
        return None


def _verify_rate_limit():
    return current_app.config["TOTP_VERIFY_RATE_LIMIT"]


def _is_session_owner(user: User) -> bool:
    return current_user.is_authenticated and current_user.id == user.id


def _reenroll_refused(user: User):
    """An enrolled factor can only be replaced from that user's own session."""
    if user.has_2fa and not _is_session_owner(user):
        log_auth_event(user.account_id, "setup_refused")
        return jsonify({"error": "Two-factor authentication is already enabled"}), 403
    return None


# -------------------------------
# 2FA: START SETUP
# -------------------------------
@two_factor_bp.route("/setup", methods=["POST"])
def start_setup():
    try:
        user_id = _payload().get("userId")
        if not user_id:
            return jsonify({"error": "User ID is required"}), 400

        user = find_user(user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404

        refused = _reenroll_refused(user)
        if refused:
            return refused

        store = _store()
        secret = generate_secret()
        qr_url = generate_qr_url(secret, user.email, current_app.config["TOTP_ISSUER"])
        factor_id = store.new_factor_id(user.account_id)
        store.put(factor_id, secret, user.account_id)

        log_auth_event(user.account_id, "setup_started")
        current_app.logger.info("2FA setup started for %s (%s)", user.account_id, factor_id)

        return jsonify({
            "success": True,
            "data": {
                "uri": qr_url,
                "secret": secret,
                "factorId": factor_id,
                "qrCode": _qr_data_uri(qr_url),
            },
        })
    except Exception:
        current_app.logger.exception("Error setting up 2FA")
        return jsonify({"error": "Failed to setup 2FA"}), 500


# -------------------------------
# 2FA: CONFIRM SETUP
# -------------------------------
@two_factor_bp.route("/setup", methods=["PUT"])
@limiter.limit(_verify_rate_limit)
def confirm_setup():
    try:
        payload = _payload()
        factor_id = payload.get("factorId")
        code = _clean_code(payload.get("code"))

        if not factor_id or not code:
            return jsonify({"error": "Factor ID and verification code are required"}), 400

        store = _store()
        pending, expired = store.get(factor_id)
        if pending is None:
            return jsonify({"error": "Invalid or expired setup session"}), 400
        if expired:
            log_auth_event(pending.user_id, "setup_expired")
            return jsonify({"error": "Setup session expired. Please try again."}), 400

        if not verify_code(pending.secret, code, window=current_app.config["TOTP_VERIFY_WINDOW"]):
            log_auth_event(pending.user_id, "setup_failed")
            return jsonify({"error": "Invalid verification code"}), 400

        user = find_user(pending.user_id)
        if not user:
            store.discard(factor_id)
            return jsonify({"error": "User not found"}), 404

        refused = _reenroll_refused(user)
        if refused:
            store.discard(factor_id)
            return refused

        user.enable_two_factor(pending.secret, pending.factor_id)
        db.session.commit()
        store.discard(factor_id)

        log_auth_event(user.account_id, "setup_completed")
        current_app.logger.info("2FA enabled for %s", user.account_id)

        response = jsonify({"success": True, "message": "2FA setup completed successfully"})
        return complete_two_factor(user, response)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Error updating 2FA")
        return jsonify({"error": "Failed to update 2FA"}), 500


# -------------------------------
# 2FA: DISABLE
# -------------------------------
@two_factor_bp.route("/setup", methods=["DELETE"])
def disable():
    try:
        factor_id = _payload().get("factorId")
        if not factor_id:
            return jsonify({"error": "Factor ID is required"}), 400

        if not current_user.is_authenticated:
            return jsonify({"error": "No session found"}), 401

        user = User.query.filter_by(two_factor_factor_id=factor_id).first()
        if not user or not _is_session_owner(user):
            return jsonify({"error": "No two-factor setup found for this factor"}), 404

        _store().discard(factor_id)
        user.disable_two_factor()
        db.session.commit()

        log_auth_event(user.account_id, "disabled")
        current_app.logger.info("2FA disabled for %s", user.account_id)

        response = jsonify({"success": True, "message": "2FA disabled successfully"})
        return clear_two_factor(response)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Error disabling 2FA")
        return jsonify({"error": "Failed to disable 2FA"}), 500


# -------------------------------
# 2FA: LOGIN CHALLENGE
# -------------------------------
@two_factor_bp.route("/verify", methods=["POST"])
@limiter.limit(_verify_rate_limit)
def verify():
    try:
        payload = _payload()
        user_id = payload.get("userId")
        code = _clean_code(payload.get("code"))

        if not user_id or not code:
            return jsonify({"error": "User ID and verification code are required"}), 400

        user = find_user(user_id)
        if not user or not user.has_2fa:
            return jsonify({"error": "Two-factor authentication is not enabled"}), 400

        if not verify_code(user.two_factor_secret, code, window=current_app.config["TOTP_VERIFY_WINDOW"]):
            log_auth_event(user.account_id, "verify_failed")
            return jsonify({"error": "Invalid verification code"}), 400

        log_auth_event(user.account_id, "verify_success")
        response = jsonify({"success": True, "message": "2FA verification successful"})
        return complete_two_factor(user, response)
    except Exception:
        current_app.logger.exception("Error verifying 2FA")
        return jsonify({"error": "Failed to verify 2FA code"}), 500


@two_factor_bp.route("/status", methods=["POST"])
def status():
    try:
        user_id = _payload().get("userId")
        if not user_id:
            return jsonify({"error": "User ID is required"}), 400

        user = find_user(user_id)
        return jsonify({"success": True, "has2FA": bool(user and user.has_2fa)})
    except Exception:
        current_app.logger.exception("Error checking 2FA status")
        return jsonify({"error": "Failed to check 2FA status"}), 500


# -------------------------------
# Diagnostics
# -------------------------------
@two_factor_bp.route("/test-totp", methods=["GET"])
def test_totp():
    if not current_app.config["TOTP_DIAGNOSTICS"]:
        abort(404)

    secret = generate_secret()
    code = generate_code(secret)
    return jsonify({
        "success": True,
        "test": {
            "secret": secret,
            "generatedCode": code,
            "isValid": verify_code(secret, code),
            "qrUrl": generate_qr_url(secret, "test@example.com", current_app.config["TOTP_ISSUER"]),
            "timestamp": datetime.utcnow().isoformat() + "Z",
        },
        "message": "TOTP functionality test completed",
    })
