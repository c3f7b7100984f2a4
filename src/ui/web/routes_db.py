"""
Database API routes — pass-through to ``mongo_ops``.

All endpoints are prefixed under /api/db/ and return JSON.
``DatabaseError`` maps to 400 (bad input / not connected) or 502
(driver failure reaching the server).
"""

from __future__ import annotations

import json
import logging

from flask import Blueprint, current_app, jsonify, request

from src.core.services import mongo_ops
from src.core.services.mongo_ops import DatabaseError, MongoConnection

logger = logging.getLogger(__name__)

db_bp = Blueprint("db", __name__)


def _conn() -> MongoConnection:
    return current_app.config["MONGO_CONNECTION"]


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


@db_bp.errorhandler(DatabaseError)
def _database_error(e: DatabaseError):  # type: ignore[no-untyped-def]
    message = str(e)
    status = 502 if message.startswith("Failed to connect") else 400
    return jsonify({"error": message}), status


# ── Connection ───────────────────────────────────────────────────────


@db_bp.route("/db/connect", methods=["POST"])
def connect():  # type: ignore[no-untyped-def]
    uri = _json_body().get("uri") or current_app.config["SETTINGS"].connection_uri
    _conn().connect(uri)
    return jsonify({"connected": True})


@db_bp.route("/db/disconnect", methods=["POST"])
def disconnect():  # type: ignore[no-untyped-def]
    _conn().disconnect()
    return jsonify({"connected": False})


@db_bp.route("/db/collections")
def collections():  # type: ignore[no-untyped-def]
    return jsonify({"collections": mongo_ops.list_collections(_conn())})


# ── Documents ────────────────────────────────────────────────────────


@db_bp.route("/db/<collection>/documents")
def find(collection: str):  # type: ignore[no-untyped-def]
    """Query with an optional JSON filter: ``?filter={"name": "x"}``."""
    raw = request.args.get("filter", "")
    try:
        query = json.loads(raw) if raw else {}
    except json.JSONDecodeError as e:
        return jsonify({"error": f"Invalid filter: {e}"}), 400
    if not isinstance(query, dict):
        return jsonify({"error": "Invalid filter: expected a JSON object"}), 400
    return jsonify({"documents": mongo_ops.find_documents(_conn(), collection, query)})


@db_bp.route("/db/<collection>/documents", methods=["POST"])
def insert(collection: str):  # type: ignore[no-untyped-def]
    doc_id = mongo_ops.insert_document(_conn(), collection, _json_body())
    return jsonify({"id": doc_id}), 201


@db_bp.route("/db/<collection>/documents/<doc_id>", methods=["PATCH"])
def update(collection: str, doc_id: str):  # type: ignore[no-untyped-def]
    modified = mongo_ops.update_document(_conn(), collection, doc_id, _json_body())
    return jsonify({"modified": modified})


@db_bp.route("/db/<collection>/documents/<doc_id>", methods=["DELETE"])
def delete(collection: str, doc_id: str):  # type: ignore[no-untyped-def]
    deleted = mongo_ops.delete_document(_conn(), collection, doc_id)
    return jsonify({"deleted": deleted})
