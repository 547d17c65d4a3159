"""Documentation blueprint exposing the users API OpenAPI description."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from flask import Blueprint, Response, current_app, jsonify

bp = Blueprint("docs", __name__)

DEFAULT_SPEC_PATH = Path(__file__).resolve().parents[1] / "openapi" / "users_openapi.yaml"


def _spec_path() -> Path:
    """Resolve the OpenAPI specification path."""
    override = current_app.config.get("OPENAPI_SPEC_PATH")
    if override:
        return Path(override)
    return DEFAULT_SPEC_PATH


def _load_spec() -> dict[str, Any]:
    """Load the OpenAPI spec from disk (YAML) and point it at the mounted prefix."""
    path = _spec_path()
    if not path.exists():
        raise FileNotFoundError(f"OpenAPI spec not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        spec = yaml.safe_load(handle)

    cfg = current_app.config.get("APP_CONFIG")
    if cfg is not None:
        spec["servers"] = [{"url": f"{cfg.api_base_url}{cfg.api_url_prefix}" or "/"}]
    return spec


@bp.route("/openapi.json", methods=["GET"])
def openapi_document() -> Response:
    """Serve the OpenAPI document as JSON."""
    return jsonify(_load_spec())
