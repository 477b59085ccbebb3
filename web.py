"""Flask web interface for inspecting archives below a root directory."""
from __future__ import annotations

import io
import logging
from pathlib import Path

from flask import Flask, abort, jsonify, request, send_file

from .archive_extract import open_archive
from .archive_resolver import MAIN_SOURCE
from .errors import ArchiveError, EntryNotFoundError, UnsupportedArchiveError

logger = logging.getLogger(__name__)


def _flag(name: str, default: bool) -> bool:
    value = request.args.get(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def create_app(root: Path | str = ".") -> Flask:
    app = Flask(__name__)
    app.config["ARCHIVE_ROOT"] = Path(root).expanduser().resolve()

    def _resolve(relpath: str) -> Path:
        base: Path = app.config["ARCHIVE_ROOT"]
        path = (base / relpath).resolve()
        # keep requests inside the configured root
        if base != path and base not in path.parents:
            abort(404)
        if not path.is_file():
            abort(404)
        return path

    def _open(relpath: str):
        try:
            return open_archive(_resolve(relpath), is_fragment=_flag("fragment", False))
        except UnsupportedArchiveError as e:
            logger.info("%s", e)
            abort(404, description=str(e))

    @app.route("/")
    def index():
        base: Path = app.config["ARCHIVE_ROOT"]
        names = sorted(p.relative_to(base).as_posix() for p in base.rglob("*") if p.is_file())
        return jsonify(files=names)

    @app.route("/summary/<path:relpath>")
    def summary(relpath: str):
        with _open(relpath) as archive:
            return jsonify(archive.summary(full=_flag("full", False)))

    @app.route("/files/<path:relpath>")
    def files(relpath: str):
        with _open(relpath) as archive:
            rows = archive.flat_entries(recurse=_flag("recurse", True), include_all=_flag("all", False))
        return jsonify(files=[row.as_dict() for row in rows])

    @app.route("/download/<path:relpath>")
    def download(relpath: str):
        name = request.args.get("name")
        if not name:
            abort(400, description="missing 'name' parameter")
        source = request.args.get("source", MAIN_SOURCE)
        with _open(relpath) as archive:
            try:
                data = archive.extract(name, source)
            except EntryNotFoundError as e:
                logger.error("%s", e)
                abort(404, description=str(e))
            except ArchiveError as e:
                logger.error("%s", e)
                abort(409, description=str(e))
        buf = io.BytesIO(data)
        buf.seek(0)
        return send_file(
            buf,
            as_attachment=True,
            download_name=Path(name.replace("\\", "/")).name,
            mimetype="application/octet-stream",
        )

    return app
