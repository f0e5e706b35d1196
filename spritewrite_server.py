# spritewrite_server.py
import sys, json, logging
from pathlib import Path
from urllib.parse import quote

from flask import Flask, Response, abort, request, send_from_directory
from markupsafe import escape
from werkzeug.exceptions import ClientDisconnected

from multibaas_client import ContractCallPayload, MultiBaasClient, MultiBaasError
from spritewrite_config import ConfigError, load_config, log_missing_settings, parse_bind

logger = logging.getLogger(__name__)

MINT_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

CORS_HEADERS = {
    "Access-Control-Allow-Methods": "POST, OPTIONS, GET, DELETE, PUT",
    "Access-Control-Allow-Headers": "content-type",
    "Access-Control-Max-Age": "0",
}


def _text_error(message: str, status: int) -> Response:
    resp = Response(message + "\n", status=status, content_type="text/plain; charset=utf-8")
    resp.headers["X-Content-Type-Options"] = "nosniff"
    return resp


def _reject_constant(name):
    raise ValueError(f"{name} is not valid JSON")


def _parse_mint_request(body: bytes):
    try:
        data = json.loads(body, parse_constant=_reject_constant)
    except RecursionError:
        raise ValueError("mint request is nested too deeply") from None
    if not isinstance(data, dict):
        raise ValueError("mint request must be a JSON object")
    colors, address = data.get("colors"), data.get("address")
    if not isinstance(colors, str) or not isinstance(address, str):
        raise ValueError("mint request needs string 'colors' and 'address' fields")
    return colors, address


def _mint(cfg, client):
    # Handle CORS preflight requests
    if request.method == "OPTIONS":
        resp = Response(status=200)
        resp.headers.update(CORS_HEADERS)
        logger.info("Preflight request")
        return resp

    if request.method != "POST":
        logger.info("Invalid request method: %s", request.method)
        return _text_error("Invalid request method", 405)

    try:
        body = request.get_data(cache=False)
    except (OSError, ClientDisconnected) as e:
        logger.error("Error reading request body: %s", e)
        return _text_error("Error reading request body", 500)

    logger.info("Mint request: %s", body.decode("utf-8", errors="replace"))

    try:
        colors, address = _parse_mint_request(body)
    except ValueError as e:
        logger.info("Error unmarshalling JSON: %s", e)
        return _text_error("Error unmarshalling JSON", 400)

    payload = ContractCallPayload(args=[colors, address], from_address=cfg.multibaas.hsm_address)
    try:
        logger.info("Payload: %s", json.dumps(payload.to_json(), indent=2))
    except (TypeError, ValueError):
        logger.exception("Payload for %s is not serializable", address)
        return _text_error("Error minting NFT", 500)

    try:
        tx_hash = client.call_mint_function(payload)
    except MultiBaasError as e:
        logger.error("Error minting NFT: %s", e)
        return _text_error("Error minting NFT", 500)

    logger.info("Mint successful, tx hash: %s", tx_hash)
    return Response(json.dumps({"txHash": tx_hash}, separators=(",", ":")), status=200, mimetype="application/json")


def _directory_listing(directory: Path, url_path: str) -> Response:
    prefix = "/" + url_path.strip("/")
    if not prefix.endswith("/"):
        prefix += "/"
    lines = ["<!doctype html>", '<meta name="viewport" content="width=device-width">', "<pre>"]
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        name = entry.name + ("/" if entry.is_dir() else "")
        lines.append(f'<a href="{escape(quote(prefix + name))}">{escape(name)}</a>')
    lines.append("</pre>")
    return Response("\n".join(lines) + "\n", mimetype="text/html")


def register_static_files(app: Flask, files_path: str):
    """Serve a prebuilt frontend from files_path on every path other than /mint."""
    root = Path(files_path).resolve()
    logger.info("Serving files from '%s'", files_path)

    @app.route("/", defaults={"path": ""}, methods=["GET", "HEAD"])
    @app.route("/<path:path>", methods=["GET", "HEAD"])
    def static_files(path):
        try:
            target = (root / path).resolve()
            found = target.is_relative_to(root) and target.exists()
        except (ValueError, OSError):
            found = False
        if not found:
            abort(404)
        if target.is_dir():
            index = target / "index.html"
            if index.is_file():
                return send_from_directory(root, index.relative_to(root).as_posix())
            return _directory_listing(target, path)
        return send_from_directory(root, path)


def create_app(cfg, client=None) -> Flask:
    """Build the relay app around a loaded Config and an optional MultiBaas client."""
    client = client or MultiBaasClient.from_config(cfg.multibaas)

    app = Flask(__name__, static_folder=None)
    app.extensions["spritewrite"] = {"config": cfg, "client": client}

    @app.route("/mint", methods=MINT_METHODS)
    def mint():
        return _mint(cfg, client)

    @app.after_request
    def allow_any_origin(resp):
        if request.endpoint == "mint":
            resp.headers["Access-Control-Allow-Origin"] = "*"
        return resp

    if cfg.serve_files:
        register_static_files(app, cfg.files_path)
    return app


def main(argv=None):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    try:
        cfg = load_config(argv)
        host, port = parse_bind(cfg.bind)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)
    logging.getLogger().setLevel(cfg.log_level)
    log_missing_settings(cfg)

    app = create_app(cfg)
    logger.info("Starting server on %s", cfg.bind)
    app.run(host=host, port=port, threaded=True)


if __name__ == "__main__":
    main()
