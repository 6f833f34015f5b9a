import os
from propertyhub import create_app, db

app = create_app()

if __name__ == "__main__":
    # Local development only; production runs through gunicorn and migrations
    with app.app_context():
        db.create_all()

    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
