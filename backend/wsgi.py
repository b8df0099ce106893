# backend/wsgi.py
from restoflow import create_app

app = create_app()
