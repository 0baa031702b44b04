import os

wsgi_app = "app:create_app()"

# Thread per request; row locks are taken per unit of work
worker_class = "gthread"
workers = int(os.getenv("WEB_CONCURRENCY", "4"))
threads = int(os.getenv("GUNICORN_THREADS", "8"))
# Gateway calls time out after GATEWAY_TIMEOUT seconds
timeout = 120
bind = "0.0.0.0:{}".format(os.getenv("PORT", "10000"))

loglevel = "info"
accesslog = "-"
errorlog = "-"
