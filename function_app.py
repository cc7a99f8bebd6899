import logging
import os

import azure.functions as func

from src.function_blueprints.health import bp as health_bp
from src.function_blueprints.render_overlay import bp as overlay_bp
from src.shared.settings import load_settings

app = func.FunctionApp(http_auth_level=func.AuthLevel.ANONYMOUS)


def _configure_logging() -> None:
    lvl = (os.getenv("AZURE_SDK_LOG_LEVEL") or "").upper()
    if lvl:
        level = getattr(logging, lvl, logging.INFO)
        logging.getLogger("azure").setLevel(level)
    logging.getLogger("overlay").setLevel(getattr(logging, load_settings().log_level, logging.INFO))


_configure_logging()

# Explicit health route first; the overlay route is a catch-all.
app.register_functions(health_bp)
app.register_functions(overlay_bp)
