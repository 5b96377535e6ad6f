# backend/wsgi.py
from florapos import create_app

app = create_app()
