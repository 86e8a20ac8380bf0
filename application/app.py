import logging
import sys
from typing import Dict

# Load environment variables FIRST, before any other imports
from dotenv import load_dotenv

load_dotenv()

from quart import Quart, Response, jsonify
from quart_rate_limiter import RateLimiter
from quart_schema import QuartSchema, ResponseSchemaValidationError, hide

from application.routes import (
    conversations_bp,
    events_bp,
    generation_bp,
    model_configs_bp,
)
from application.routes.common.error_handlers import register_error_handlers
from application.services.service_factory import get_service_factory
from common.config.config import APP_LOG_FILE, APP_TIMEOUT

# Configure root logging to both stdout and a file for debugging/triage.
# Override the file location with APP_LOG_FILE.
log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logging.basicConfig(
    level=logging.INFO,
    format=log_format,
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(APP_LOG_FILE, mode="a"),
    ],
)

# Request/response wire logs of the provider client are only useful when debugging
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = Quart(__name__)

# Extend Quart timeouts for long-lived SSE responses
app.config["RESPONSE_TIMEOUT"] = APP_TIMEOUT
app.config["BODY_TIMEOUT"] = APP_TIMEOUT

RateLimiter(app)

QuartSchema(
    app,
    info={"title": "LocalChat", "version": "1.0.0"},
    tags=[
        {"name": "Conversations", "description": "Conversation and message storage"},
        {"name": "Generation", "description": "Send, regenerate and stop commands"},
        {"name": "Events", "description": "Stream lifecycle events (SSE)"},
        {"name": "Model configs", "description": "OpenAI-compatible endpoints"},
    ],
)


@app.errorhandler(ResponseSchemaValidationError)
async def handle_response_validation_error(
    error: ResponseSchemaValidationError,
) -> tuple[Dict[str, str], int]:
    logger.error(f"Response schema validation failed: {error}")
    return {"error": "VALIDATION", "error_code": "RESPONSE_VALIDATION_ERROR"}, 500


register_error_handlers(app)

# Register blueprints
app.register_blueprint(conversations_bp, url_prefix="/api/v1/conversations")
app.register_blueprint(generation_bp, url_prefix="/api/v1")
app.register_blueprint(events_bp, url_prefix="/api/v1")
app.register_blueprint(model_configs_bp, url_prefix="/api/v1/model-configs")


@app.route("/favicon.ico")
@hide
def favicon() -> tuple[str, int]:
    return "", 200


@app.route("/health")
@hide
async def health() -> tuple[Response, int]:
    return jsonify({"status": "ok"}), 200


# Startup tasks: open storage and seed the default model config
@app.before_serving
async def startup() -> None:
    logger.info("Initializing services at application startup...")
    await get_service_factory().initialize()
    logger.info("All services initialized successfully at startup")


# Shutdown tasks: stop in-flight generations (each still emits stream-finished)
@app.after_serving
async def shutdown() -> None:
    """Cleanup tasks on shutdown."""
    logger.info("Shutting down application...")
    await get_service_factory().shutdown()
    logger.info("Application shutdown complete")


# Middleware to add CORS headers to every response (the desktop shell is a
# separate origin)
@app.after_request
async def apply_cors(response: Response) -> Response:
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = (
        "GET, POST, PUT, PATCH, DELETE, OPTIONS"
    )
    response.headers["Access-Control-Allow-Headers"] = "*"
    return response


# Handle OPTIONS preflight requests for CORS
@app.route("/<path:path>", methods=["OPTIONS"])
@hide
async def handle_options(path: str) -> tuple[Response, int]:
    """Handle CORS preflight OPTIONS requests."""
    return jsonify({"status": "ok"}), 200
