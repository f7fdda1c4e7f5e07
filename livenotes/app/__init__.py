"""
Flask application factory for Live Lecture Notes.
Sets up: Config, logging, the recording controller on a background loop, API blueprint, and health endpoint.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS
from loguru import logger

from livenotes.config import AppConfig, get_config
from livenotes.line_source import HttpLineSource
from livenotes.llm_client import LLMClient
from livenotes.logging_utils import setup_logging
from livenotes.recorder import RecordingController
from livenotes.storage import create_store
from livenotes.app.runner import BackgroundLoop


def _default_controller(cfg: AppConfig) -> RecordingController:
    return RecordingController(
        source=HttpLineSource(cfg.source),
        text_service=LLMClient(cfg.llm),
        store=create_store(cfg.storage),
        config=cfg,
    )


def create_app(
    config_object: Optional[AppConfig] = None,
    controller: Optional[RecordingController] = None,
    runner: Optional[BackgroundLoop] = None,
) -> Flask:
    """
    Flask application factory.
    """
    cfg = config_object or get_config()
    setup_logging(cfg.log_level)

    app = Flask(__name__)
    app.config.update(
        JSON_SORT_KEYS=False,
        LIVENOTES_REQUEST_TIMEOUT=cfg.web.request_timeout,
    )

    CORS(app, resources={r"/api/*": {"origins": cfg.web.cors_origins}})

    app.extensions["livenotes"] = {
        "config": cfg,
        "controller": controller or _default_controller(cfg),
        "runner": runner or BackgroundLoop(),
    }

    from livenotes.app.api import api_bp  # defer import until app exists
    app.register_blueprint(api_bp, url_prefix="/api")

    @app.get("/health")
    def health():
        state = app.extensions["livenotes"]
        return jsonify(
            {
                "status": "ok",
                "time": datetime.utcnow().isoformat() + "Z",
                "model": cfg.llm.model,
                "storage": cfg.storage.backend,
                "recording": state["controller"].recording,
            }
        )

    logger.info(
        f"App initialized. Health at /health. model={cfg.llm.model} "
        f"storage={cfg.storage.backend} source={cfg.source.base_url}"
    )
    return app
