# backend/wsgi.py
from kiosco import create_app

app = create_app()
