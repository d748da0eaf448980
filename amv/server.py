"""Local HTTP server: brokers model calls and serves the browser UI."""

import time
from collections.abc import Callable
from pathlib import Path

import requests
from flask import Flask, jsonify, request
from pydantic import BaseModel, Field, ValidationError
from rich.console import Console
from rich.markup import escape

from amv.models.entries import FileEntry
from amv.processors.collisions import detect_collisions
from amv.processors.suggestion_pipeline import SuggestionPipeline
from amv.providers import DEFAULT_MODEL_IDENTIFIER, ModelClient, create_model_client, list_ollama_models, provider_status
from amv.templates import TEMPLATES_DIR, list_templates, load_template


console = Console()

STATIC_DIR = Path(__file__).parent / "static"


class FilesRequest(BaseModel):
    files: list[FileEntry] = Field(default_factory=list)


class SuggestNamesRequest(FilesRequest):
    rules: str
    model: str | None = None


def _error(status: int, error: str, details: str | None = None):
    body = {"error": error}
    if details:
        body["details"] = details
    return jsonify(body), status


def create_app(
    model_identifier: str = DEFAULT_MODEL_IDENTIFIER,
    client_factory: Callable[[str], ModelClient] | None = None,
    templates_dir: Path = TEMPLATES_DIR,
    sleep: Callable[[float], None] = time.sleep,
) -> Flask:
    """Create the Flask application.

    Args:
        model_identifier: Model used when a request does not name one.
        client_factory: Builds a model client for a model identifier. Defaults to `create_model_client`.
        templates_dir: Directory holding the rule templates.
        sleep: Wait function used between suggestion attempts.
    """
    app = Flask(__name__, static_folder=str(STATIC_DIR), static_url_path="")
    app.config["AMV_MODEL"] = model_identifier
    client_factory = client_factory or create_model_client

    @app.get("/")
    def index():
        return app.send_static_file("index.html")

    @app.post("/api/suggest-names")
    def suggest_names():
        try:
            payload = SuggestNamesRequest.model_validate(request.get_json(silent=True) or {})
        except ValidationError as e:
            return _error(400, "Invalid request", str(e))
        if not payload.rules.strip():
            return _error(400, "Invalid request", "Renaming rules are required")

        model = payload.model or app.config["AMV_MODEL"]
        try:
            pipeline = SuggestionPipeline(client_factory(model), payload.rules, sleep=sleep)
            result = pipeline.run(payload.files)
        except Exception as e:
            console.print(f"[bold red]AI suggestion error:[/bold red] {escape(str(e))}")
            return _error(500, "Failed to generate suggestions", str(e))

        return jsonify(
            files=[entry.to_api() for entry in payload.files],
            failures=[
                {"path": failure.path, "kind": failure.kind.value, "message": failure.message}
                for failure in result.failures
            ],
        )

    @app.post("/api/check-collisions")
    def check_collisions():
        try:
            payload = FilesRequest.model_validate(request.get_json(silent=True) or {})
        except ValidationError as e:
            return _error(400, "Invalid request", str(e))

        report = detect_collisions(payload.files)
        return jsonify(collisions=sorted(report.paths), messages=report.messages)

    @app.get("/api/templates")
    def templates():
        return jsonify(templates=[template.to_api() for template in list_templates(templates_dir)])

    @app.get("/api/templates/<name>")
    def template(name: str):
        try:
            content = load_template(name, templates_dir)
        except FileNotFoundError as e:
            return _error(404, "Template not found", str(e))
        return jsonify(content=content)

    @app.get("/api/health")
    def health():
        return jsonify(status="ok", model=app.config["AMV_MODEL"], providers=provider_status())

    @app.get("/api/ollama/models")
    def ollama_models():
        try:
            models = list_ollama_models()
        except requests.RequestException as e:
            return _error(502, "Failed to list Ollama models", str(e))
        return jsonify(models=models)

    return app
