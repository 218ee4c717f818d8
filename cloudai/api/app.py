"""HTTP surface: streaming relay endpoint and health check."""

from __future__ import annotations

import logging

from flask import Flask, Response, jsonify, request, stream_with_context

from cloudai.config import Config, get_config
from cloudai.core.errors import ConfigError, ValidationError
from cloudai.relay.connector import UpstreamConnector
from cloudai.relay.emitter import relay
from cloudai.relay.validator import ContentPolicy, validate_request

logger = logging.getLogger(__name__)

app = Flask(__name__)


def get_connector(config: Config) -> UpstreamConnector:
    return UpstreamConnector.from_config(config)


def _request_fields() -> dict:
    """JSON body fields overlaid with query parameters (query wins, as EventSource clients only send a query)."""
    fields: dict = {}
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        fields.update(body)
    fields.update(request.args.to_dict())
    return fields


@app.route("/api/cloud-ai-stream", methods=["GET", "POST"])
def cloud_ai_stream():
    config = get_config()
    try:
        stream_request = validate_request(
            _request_fields(),
            policy=ContentPolicy(config.relay.blocked_pattern),
            default_model=config.provider.model,
            default_temperature=config.relay.default_temperature,
            default_sophistication=config.relay.default_sophistication,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    connector = get_connector(config)
    try:
        connector.ensure_configured()
    except ConfigError as e:
        logger.error("relay request refused: %s", e)
        return jsonify({"error": str(e)}), 500

    frames = relay(stream_request, connector, max_seconds=config.relay.max_exchange_seconds)
    return Response(
        stream_with_context(frames),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "X-Accel-Buffering": "no",
            "Access-Control-Allow-Origin": config.server.cors_origin,
        },
    )


@app.route("/health", methods=["GET"])
def health():
    return jsonify({"ok": True})
