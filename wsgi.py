# wsgi.py
import os

from app import create_app

os.environ.setdefault('FLASK_ENV', 'production')

app = create_app()

# exposed for gunicorn / waitress-serve: wsgi:app
