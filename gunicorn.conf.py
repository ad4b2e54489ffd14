# Gunicorn configuration for the dashboard API
import os

# Cold-cache views fan out to several Supabase queries
timeout = int(os.environ.get("GUNICORN_TIMEOUT", 120))

# One worker keeps a single in-memory cache; threads serve concurrent requests
workers = int(os.environ.get("WEB_CONCURRENCY", 1))
threads = int(os.environ.get("GUNICORN_THREADS", 4))

bind = f"0.0.0.0:{os.environ.get('PORT', '5000')}"

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
