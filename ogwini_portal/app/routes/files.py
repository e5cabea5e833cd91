from __future__ import annotations

from flask import Blueprint, abort, send_file

from ..services import storage_service
from ..services.auth_service import login_required


bp = Blueprint("files", __name__, url_prefix="/files")


@bp.get("/<bucket>/<path:object_path>")
@login_required
def serve(bucket: str, object_path: str):
    abs_path = storage_service.resolve(bucket, object_path)
    if abs_path is None:
        abort(404)
    return send_file(abs_path, as_attachment=False, download_name=abs_path.name)
