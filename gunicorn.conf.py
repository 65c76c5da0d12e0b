# use in gunicorn as: env/bin/gunicorn metastore.api:app -c gunicorn.conf.py

# Workers
# Project creation is serialised per key within one process, so keep a single worker
workers = 1
worker_class = 'uvicorn.workers.UvicornWorker'

# Socket
bind = 'localhost:5143'

# Logging
# loglevel = 'debug'
# accesslog = '/tmp/metastore_access_log'
# errorlog =  '/tmp/metastore_error_log'
