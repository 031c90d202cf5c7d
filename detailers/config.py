import os


def _normalize_db_url(url: str) -> str:
    """
    Normalize DATABASE_URL so SQLAlchemy loads the right DBAPI.
    We standardize on the psycopg v3 driver ('+psycopg').
    """
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://") and "+psycopg://" not in url:
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _default_db_url() -> str:
    db_path = os.path.join(os.path.dirname(__file__), "..", "instance", "app.db")
    os.makedirs(os.path.dirname(db_path), exist_ok=True)
    return f"sqlite:///{os.path.abspath(db_path)}"


class Config:
    """Environment-driven settings, read by create_app()."""

    def __init__(self):
        self.SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
        self.TESTING = os.getenv("TESTING", "false").lower() == "true"

        db_url = os.environ.get("DATABASE_URL")
        self.SQLALCHEMY_DATABASE_URI = _normalize_db_url(db_url) if db_url else _default_db_url()
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        self.DB_AUTOCREATE = os.getenv("DU_DB_AUTOCREATE", "false").lower() == "true"
        self.DB_MIGRATE_ON_START = os.getenv("DU_DB_MIGRATE_ON_START", "false").lower() == "true"

        # Flask-JWT-Extended
        self.JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY") or self.SECRET_KEY
        self.JWT_ALGORITHM = "HS256"
        self.JWT_ACCESS_TOKEN_EXPIRES_MIN = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES_MIN", "1440"))

        # Stripe
        self.STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "").strip()
        self.STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "").strip()
        self.PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd").lower()

        # SendGrid
        self.SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "").strip()
        self.SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL", "no-reply@detailersuni.com")
        self.SENDGRID_FROM_NAME = os.getenv("SENDGRID_FROM_NAME", "Detailers University")
        self.FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "https://www.detailersuni.com").rstrip("/")

        # Reconciliation of PAID purchases whose fulfillment did not complete
        self.FULFILLMENT_GRACE_MINUTES = int(os.getenv("FULFILLMENT_GRACE_MINUTES", "10"))
        self.FULFILLMENT_MAX_ATTEMPTS = int(os.getenv("FULFILLMENT_MAX_ATTEMPTS", "5"))

    def as_dict(self) -> dict:
        return {k: v for k, v in vars(self).items() if k.isupper()}
