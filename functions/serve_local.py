#!/usr/bin/env python3
"""Local development server for the Landscaping Quote Pipeline.

Usage:
    cd functions
    source venv/bin/activate
    python serve_local.py

This will start a Flask server that handles:
- POST /quote  -> price a free-text quote request
- GET /health  -> run the pipeline health check

Set PIPELINE_MODE=mock to run without the pricing oracle or OpenAI.
"""

import asyncio
import logging
import os

import structlog
from flask import Flask, request, jsonify
from flask_cors import CORS

from config.settings import settings
from config.errors import ErrorCode
from main import error_response, handle_health, handle_quote_request

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, settings.log_level.upper(), logging.INFO)
    ),
)

app = Flask(__name__)
CORS(app)


@app.route('/quote', methods=['POST'])
def quote():
    payload = request.get_json(force=True, silent=True)
    if payload is None:
        return jsonify(error_response(ErrorCode.INVALID_REQUEST, "Request body must be valid JSON")), 400

    response = asyncio.run(handle_quote_request(payload))
    if response["success"]:
        return jsonify(response), 200

    status = 400 if response["error"]["code"] == ErrorCode.INVALID_REQUEST else 500
    return jsonify(response), status


@app.route('/health', methods=['GET'])
def health():
    response = asyncio.run(handle_health())
    return jsonify(response), 200 if response["success"] else 503


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5002))
    print(f"""
╔════════════════════════════════════════════════════════════════╗
║  Landscaping Quote Pipeline - Local Development Server         ║
╠════════════════════════════════════════════════════════════════╣
║                                                                ║
║  Server running on: http://127.0.0.1:{port}                     ║
║  Pipeline mode    : {settings.pipeline_mode:<43}║
║                                                                ║
║  Endpoints:                                                    ║
║  • POST /quote   {{"message": "45 sq ft mulch", "debug": true}}  ║
║  • GET  /health                                                ║
║                                                                ║
╚════════════════════════════════════════════════════════════════╝
""")
    app.run(host='127.0.0.1', port=port, debug=True, threaded=True)
