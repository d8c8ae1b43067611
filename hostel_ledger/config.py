import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", "sqlite:///" + os.path.join(BASE_DIR, "hostel.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JSON API, no browser forms to protect
    WTF_CSRF_ENABLED = False

    # Reminder gateway (email/SMS bridge). Empty means log-only.
    NOTIFY_WEBHOOK_URL = os.environ.get("NOTIFY_WEBHOOK_URL", "")
    NOTIFY_TIMEOUT = float(os.environ.get("NOTIFY_TIMEOUT", "5"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
