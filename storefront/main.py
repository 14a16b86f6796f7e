# storefront/main.py
import logging
import time

from flask import Flask, g, jsonify, request, session
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from storefront.auth import require_admin
from storefront.blueprints import ALL_BLUEPRINTS
from storefront.config import Config
from storefront.database import SessionLocal, close_db, get_db, init_database
from storefront.errors import StorefrontError
from storefront.models import User
from storefront.observability import (
    check_database_health,
    configure_logging,
    ensure_request_id,
    get_metrics_snapshot,
    increment_counter,
    observe_latency,
)
from storefront.services.user_service import UserService

app = Flask(__name__)
Config.configure_app(app)
configure_logging(app)
for blueprint in ALL_BLUEPRINTS:
    app.register_blueprint(blueprint)

logger = logging.getLogger(__name__)


def ensure_super_admin() -> None:
    """Create the configured admin account; a database outage only logs."""
    if not init_database():
        return
    db = SessionLocal()
    try:
        UserService(db).ensure_super_admin()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Could not bootstrap super admin: %s", exc)
    finally:
        db.close()


# Initialize database and admin account on startup
ensure_super_admin()


@app.before_request
def before_request_logging():
    g.current_user = None
    g.request_started_at = time.perf_counter()
    g.request_id = ensure_request_id()
    if 'user_id' in session:
        db = get_db()
        g.current_user = db.query(User).filter_by(userID=session['user_id']).first()
    increment_counter(
        "http_requests_total",
        labels={
            "method": request.method,
            "endpoint": request.endpoint or request.path,
        },
    )


@app.after_request
def after_request_logging(response):
    started = getattr(g, 'request_started_at', None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000
        observe_latency(
            "http_request_latency_ms",
            duration_ms,
            labels={
                "method": request.method,
                "endpoint": request.endpoint or request.path,
                "status": str(response.status_code),
            },
        )
    request_id = getattr(g, 'request_id', None)
    if request_id:
        response.headers[Config.REQUEST_ID_HEADER] = request_id
    if response.status_code >= 500:
        increment_counter(
            "http_errors_total",
            labels={
                "method": request.method,
                "endpoint": request.endpoint or request.path,
                "status": str(response.status_code),
            },
        )
        logger.error("Request finished with error status %s", response.status_code)
    else:
        logger.info("Request finished", extra={"status_code": response.status_code})
    return response


@app.teardown_appcontext
def teardown_db(exception):
    close_db(exception)


# --- Error handlers ---

@app.errorhandler(StorefrontError)
def handle_storefront_error(error: StorefrontError):
    increment_counter(
        "domain_errors_total",
        labels={"code": error.code, "endpoint": request.endpoint or request.path},
    )
    logger.info("Request rejected: %s", error.message, extra={"error_code": error.code})
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(HTTPException)
def handle_http_exception(error: HTTPException):
    return jsonify({"success": False, "message": error.description, "code": error.name.upper().replace(" ", "_")}), error.code


@app.errorhandler(Exception)
def handle_unexpected_error(error: Exception):
    logger.exception("Unhandled error: %s", error)
    return jsonify({"success": False, "message": "Internal server error", "code": "INTERNAL_ERROR"}), 500


# --- Operational endpoints ---

@app.route('/health', methods=['GET'])
def health():
    db_status = check_database_health()
    overall = "UP" if db_status.get("status") == "UP" else "DEGRADED"
    status_code = 200 if overall == "UP" else 503
    return jsonify({
        "success": overall == "UP",
        "status": overall,
        "components": {
            "database": db_status
        }
    }), status_code


@app.route('/admin/metrics', methods=['GET'])
def admin_metrics():
    require_admin()
    return jsonify({"success": True, "metrics": get_metrics_snapshot()})
