# backend/wsgi.py
from lpgops import create_app

app = create_app()
