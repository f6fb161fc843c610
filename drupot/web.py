"""Flask front end impersonating a Drupal site.

Every route that matters hands the request to the event pipeline first and
then answers the way Drupal would. Telemetry problems never change the
response.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional, Tuple

from flask import Flask, Response, render_template, request, send_file, send_from_directory
from werkzeug.exceptions import RequestEntityTooLarge

from drupot.classifier import CHANGELOG_PATH, Classification, NO_SIGNATURE
from drupot.config import AppConfig
from drupot.identity import SensorIdentity
from drupot.pipeline import EventPipeline
from drupot.request import describe_request

logger = logging.getLogger(__name__)

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
PUBLIC_DIR = os.path.join(PACKAGE_DIR, "public")

ERR_DRUPAL_422 = "The website encountered an unexpected error. Please try again later."
LOGIN_FAILED = "Unrecognized username or password. Forgot your password?"

ANY_METHOD = ["GET", "POST", "PUT", "DELETE", "PATCH"]


def request_host_url() -> str:
    """Best effort absolute URL of the current request, as Drupal echoes it."""
    query = request.query_string.decode("latin-1")
    url = f"http://{request.host}{request.path}"
    return f"{url}?{query}" if query else url


def create_app(
    config: AppConfig,
    sensor: SensorIdentity,
    pipeline: EventPipeline,
    public_dir: Optional[str] = None,
) -> Flask:
    app = Flask(__name__, static_folder=None)
    drupal = config.drupal
    app.config["MAX_CONTENT_LENGTH"] = drupal.max_body_bytes
    assets = public_dir or PUBLIC_DIR

    def record() -> Classification:
        try:
            try:
                descriptor = describe_request(request)
            except RequestEntityTooLarge:
                logger.warning(
                    "Dropping %s byte body of %s %s from %s",
                    request.content_length, request.method, request.path, request.remote_addr,
                )
                descriptor = describe_request(request, with_body=False)
            return pipeline.handle(descriptor)
        except Exception:
            logger.exception("Event pipeline failed for %s %s", request.method, request.path)
            return NO_SIGNATURE

    def page_context() -> Dict[str, Any]:
        return {"Title": drupal.site_name, "Host": f"http://{sensor.ip}", "Version": drupal.version}

    def not_found() -> Tuple[str, int]:
        return render_template("drupal-404.html", host=request_host_url(), **page_context()), 404

    @app.after_request
    def add_generator_header(response: Response) -> Response:
        if response.mimetype == "text/html" and drupal.header:
            response.headers["X-Generator"] = drupal.header
        return response

    @app.route("/", defaults={"path": ""}, methods=ANY_METHOD)
    @app.route("/<path:path>", methods=ANY_METHOD)
    def index(path: str) -> Any:
        record()
        if request.path == CHANGELOG_PATH:
            changelog = os.path.abspath(drupal.changelog_filepath)
            if drupal.changelog_enabled and os.path.isfile(changelog):
                return send_file(changelog, mimetype="text/plain")
            # Drupal 8 sites generally do not serve their changelog.
            return not_found()
        filename = f"index-{drupal.version}.html"
        return render_template(filename, **page_context())

    @app.route("/node/", defaults={"rest": ""}, methods=ANY_METHOD)
    @app.route("/node/<path:rest>", methods=ANY_METHOD)
    def node(rest: str) -> Any:
        record()
        return Response(ERR_DRUPAL_422 + "\n", status=422, mimetype="text/plain")

    @app.route("/user/login", methods=["GET", "POST"])
    def user_login() -> Any:
        classification = record()
        error = LOGIN_FAILED if request.method == "POST" else None
        username = classification.credentials.username if classification.credentials else ""
        return render_template("user-login.html", error=error, username=username, **page_context())

    @app.route("/core/<path:filename>")
    def core_asset(filename: str) -> Any:
        return send_from_directory(os.path.join(assets, "core"), filename)

    @app.route("/sites/<path:filename>")
    def sites_asset(filename: str) -> Any:
        return send_from_directory(os.path.join(assets, "sites"), filename)

    @app.route("/logo.svg")
    def logo() -> Any:
        return send_from_directory(assets, "logo.svg")

    return app
