"""
Gunicorn target:  gunicorn childcare_backend.wsgi:app
Schema bootstrap: python -m childcare_backend.init_db
"""

import os

from childcare_backend.app import create_app

app = create_app()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    print(f"🚀 Childcare portal backend listening on :{port}")
    app.run(host="0.0.0.0", port=port)
