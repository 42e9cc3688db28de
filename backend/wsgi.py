# backend/wsgi.py
import os

from backoffice import create_app
from backoffice.config import config

app = create_app(config[os.environ.get("BACKOFFICE_CONFIG", "default")])
