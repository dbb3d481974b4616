# backend/gunicorn_conf.py

# Gunicorn config file

import os

# Basic configuration
bind = f"0.0.0.0:{os.getenv('PORT', '3000')}"
# Long polling allows a single consumer per bot token; run more workers only
# with TELEGRAM_UPDATE_MODE=webhook.
workers = int(os.getenv("WEB_CONCURRENCY", "1"))
worker_class = "uvicorn.workers.UvicornWorker"

# Settings for running behind a reverse proxy like Nginx
forwarded_allow_ips = "*"

# --- Logging ---
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info")
