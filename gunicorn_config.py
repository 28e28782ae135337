"""
Gunicorn configuration file for the Synexa-SIS backend

Usage:
    gunicorn -c gunicorn_config.py synexa.wsgi:application

Every value can be overridden from the environment (or .env) so the same
file serves staging and production.
"""

import multiprocessing

from decouple import config

# Server socket
bind = config('GUNICORN_BIND', default='unix:/var/run/gunicorn/synexa.sock')

# Request/response handlers run to completion on one worker each
workers = config('GUNICORN_WORKERS', default=multiprocessing.cpu_count() * 2 + 1, cast=int)
worker_class = "sync"
# Payment writes hold an invoice row lock; keep requests short
timeout = config('GUNICORN_TIMEOUT', default=30, cast=int)
graceful_timeout = 30
keepalive = 2

# Logging
accesslog = config('GUNICORN_ACCESS_LOG', default='/var/log/gunicorn/synexa_access.log')
errorlog = config('GUNICORN_ERROR_LOG', default='/var/log/gunicorn/synexa_error.log')
loglevel = config('GUNICORN_LOG_LEVEL', default='info')
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "synexa"
pidfile = config('GUNICORN_PIDFILE', default='/var/run/gunicorn/synexa.pid')
daemon = False

# Preload app so PyMySQL is installed once in the master
preload_app = True

# Restart workers after this many requests, to help prevent memory leaks
max_requests = 1000
max_requests_jitter = 50
