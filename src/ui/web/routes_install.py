"""
Installer API routes.

    GET  /api/installed                       → {"installed": bool, "votes": {...}}
    POST /api/install                         → 202 started | 409 already running
    POST /api/install/cancel                  → {"cancelled": bool}
    GET  /api/install/status                  → sequencer state + last outcome
    POST /api/credential-response/<token>     → {"accepted": bool}

Progress is not returned here; it streams over ``/api/events``.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from src.core.models.installation import CredentialResponse
from src.core.services.installer.errors import InstallInProgress
from src.core.services.installer.orchestration.runtime import InstallerRuntime

logger = logging.getLogger(__name__)

install_bp = Blueprint("install", __name__)


def _runtime() -> InstallerRuntime:
    return current_app.config["INSTALLER_RUNTIME"]


@install_bp.route("/installed")
def installed():  # type: ignore[no-untyped-def]
    """Run the installation probes."""
    verdict = _runtime().is_installed()
    return jsonify(verdict.model_dump())


@install_bp.route("/install", methods=["POST"])
def install():  # type: ignore[no-untyped-def]
    """Start an installation run in the background."""
    try:
        future = _runtime().start_install()
    except InstallInProgress as e:
        return jsonify({"error": e.reason}), 409

    def _log_outcome(fut) -> None:  # type: ignore[no-untyped-def]
        if fut.cancelled():
            return
        error = fut.exception()
        if error is not None:
            logger.error("Installation task crashed: %s", error)
        else:
            logger.info("Installation finished: %s", fut.result().status)

    future.add_done_callback(_log_outcome)
    return jsonify({"started": True, "platform": _runtime().service.platform_name}), 202


@install_bp.route("/install/cancel", methods=["POST"])
def cancel():  # type: ignore[no-untyped-def]
    return jsonify({"cancelled": _runtime().cancel()})


@install_bp.route("/install/status")
def install_status():  # type: ignore[no-untyped-def]
    return jsonify(_runtime().status())


@install_bp.route("/credential-response/<token>", methods=["POST"])
def credential_response(token: str):  # type: ignore[no-untyped-def]
    """Answer a ``credential-request`` event.

    Unknown or expired tokens are accepted at the HTTP level and
    reported with ``accepted: false``.
    """
    body = request.get_json(silent=True) or {}
    secret = body.get("secret")
    if secret is not None and not isinstance(secret, str):
        return jsonify({"error": "secret must be a string"}), 400

    response = CredentialResponse(token=token, secret=secret)
    accepted = _runtime().deliver_credential(response.token, response.value)
    if not accepted:
        logger.info("Credential response for unknown token %s ignored", token)
    return jsonify({"accepted": accepted})
