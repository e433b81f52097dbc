# -*- coding: utf-8 -*-
"""
SQL portal blueprint: read-only SELECT queries against the reporting database,
plus the catch-file upload used to drop input files for the ETL.
"""
from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict

import psycopg2
from flask import Blueprint, jsonify, request
from werkzeug.utils import secure_filename

from config.app_config import DB_HOST, DB_NAME, DB_PORT, SQL_PORTAL_PASSWORD, SQL_PORTAL_USER, UPLOAD_DIR
from sql_portal.validation import SqlValidationError, validate_sql

logger = logging.getLogger(__name__)

sql_portal_bp = Blueprint("sql_portal", __name__)


def get_connection():
    """Observer-user connection in a read-only session."""
    conn = psycopg2.connect(
        host=DB_HOST,
        port=DB_PORT,
        dbname=DB_NAME,
        user=SQL_PORTAL_USER,
        password=SQL_PORTAL_PASSWORD,
    )
    conn.set_session(readonly=True)
    return conn


def execute_query(sql: str) -> Dict[str, Any]:
    """Run a validated query; returns rows as dicts plus field names and type oids."""
    conn = get_connection()
    try:
        cursor = conn.cursor()
        started = time.monotonic()
        cursor.execute(sql)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        description = cursor.description or []
        names = [d[0] for d in description]
        rows = [dict(zip(names, row)) for row in cursor.fetchall()] if description else []
        row_count = cursor.rowcount
        cursor.close()
    finally:
        conn.close()
    return {
        "success": True,
        "rowCount": row_count,
        "rows": rows,
        "executionTime": f"{elapsed_ms}ms",
        "fields": [{"name": d[0], "dataType": d[1]} for d in description],
    }


@sql_portal_bp.route("/api/v1/sql-portal/query", methods=["POST"])
def api_sql_query():
    """Body: { sql }. SELECT only; see validate_sql."""
    payload = request.get_json(silent=True) or {}
    try:
        sql = validate_sql(payload.get("sql"))
    except SqlValidationError as e:
        return jsonify({"success": False, "error": e.error}), e.status
    try:
        return jsonify(execute_query(sql))
    except psycopg2.Error as e:
        logger.exception("sql portal query failed")
        return jsonify({
            "success": False,
            "error": "Query execution failed",
            "message": str(e),
            "detail": getattr(getattr(e, "diag", None), "message_detail", None),
        }), 500


@sql_portal_bp.route("/api/v1/upload/catch-file", methods=["POST"])
def api_catch_file():
    """Multipart field `file`; saved under UPLOAD_DIR by its (sanitized) original name."""
    f = request.files.get("file")
    if f is None or not f.filename:
        return jsonify({"message": "No file received"}), 400
    name = secure_filename(f.filename)
    if not name:
        return jsonify({"message": "File upload failed", "error": "invalid filename"}), 400
    target = os.path.join(UPLOAD_DIR, name)
    try:
        os.makedirs(UPLOAD_DIR, exist_ok=True)
        f.save(target)
    except OSError as e:
        logger.exception("saving upload %s failed", name)
        return jsonify({"message": "Failed to save file", "error": str(e)}), 500
    return jsonify({
        "message": "File saved successfully",
        "filename": name,
        "size": os.path.getsize(target),
        "mimetype": f.mimetype,
        "savedTo": target,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    })
