"""
Gunicorn configuration for Persway.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Each worker holds its own Admin API rate limiter, so the shop-wide budget
# is RATE_LIMIT_MAX_REQUESTS * workers.
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = 60  # metafield read + write per customer, rate limited
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'persway'

preload_app = True

graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting Persway server...")


def on_exit(server):
    print("[Gunicorn] Persway server shutting down...")
