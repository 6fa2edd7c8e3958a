# fleet_api/common/http.py
import io

from flask import jsonify, send_file


def ok(data=None, status=200, **meta):
    payload = {"success": True, "data": data}
    if meta:
        payload["meta"] = meta
    return jsonify(payload), status


def fail(message="Bad Request", status=400, code=None, detail=None, errors=None):
    err = {"message": message}
    if code: err["code"] = code
    if detail: err["detail"] = detail
    if errors: err["errors"] = errors
    return jsonify({"success": False, "error": err}), status


def download(content: bytes, file_name: str, mime: str):
    """Attachment response for an in-memory export."""
    return send_file(io.BytesIO(content), mimetype=mime, as_attachment=True, download_name=file_name)
