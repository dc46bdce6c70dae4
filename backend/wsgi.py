# backend/wsgi.py
from craftfair import create_app

app = create_app()
