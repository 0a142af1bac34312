import os


def normalize_db_url(url: str) -> str:
    """Accept ``postgres://`` URLs handed out by hosting providers."""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def _split_labs(raw: str) -> list:
    return [part.strip().upper() for part in raw.split(",") if part.strip()]


class Config:
    """Configuration for the Flask app, database and QR storage.

    - ``SQLALCHEMY_DATABASE_URI``: defaults to a local SQLite file but can be
      overridden via the ``DATABASE_URL`` environment variable.
    - ``API_URL``: base URL used to build each system's canonical
      ``/system/<id>`` link, which is also what the QR code points at.
    - ``LAB_NAMES``: the closed set of lab codes systems may belong to.  Set
      ``LAB_NAMES=MCA,BCA,...`` to add a lab without touching the code.
    - ``BLOB_BACKEND``: ``local`` keeps QR images on disk under
      ``QR_STORAGE_DIR``; ``supabase`` uploads them to a Supabase Storage
      bucket and needs ``SUPABASE_URL`` and ``SUPABASE_SERVICE_ROLE_KEY``.
    - ``JSON_SORT_KEYS``: prevents Flask from alphabetically sorting keys in
      JSON responses, preserving insertion order instead.
    """

    SQLALCHEMY_DATABASE_URI = normalize_db_url(
        os.getenv("DATABASE_URL", "sqlite:///labinventory.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
    JSON_SORT_KEYS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    API_URL = os.getenv("API_URL", "http://localhost:5000").rstrip("/")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "*")

    LAB_NAMES = _split_labs(os.getenv("LAB_NAMES", "MCA,BCA,UIT,PIT,UCS,PCS,PDS"))
    DEFAULT_DESCRIPTION = os.getenv(
        "DEFAULT_DESCRIPTION",
        "INTEL CORE 2 DUO 2.90 GHZ, 4GB RAM, 360GB HDD, LED MONITOR, KB & MOUSE",
    )
    MAX_SYSTEMS_PER_REQUEST = 100
    ALLOCATION_RETRIES = 3

    QR_FILL_COLOR = os.getenv("QR_FILL_COLOR", "#000000")
    QR_BACK_COLOR = os.getenv("QR_BACK_COLOR", "#FFFFFF")

    BLOB_BACKEND = os.getenv("BLOB_BACKEND", "local")
    # None means "<instance folder>/qrcodes", resolved in create_app
    QR_STORAGE_DIR = os.getenv("QR_STORAGE_DIR")
    SUPABASE_URL = os.getenv("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    QR_BUCKET = os.getenv("QR_BUCKET", "qr-codes")
    BLOB_TIMEOUT = float(os.getenv("BLOB_TIMEOUT", "10"))


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    API_URL = "http://testserver"
    BLOB_BACKEND = "local"
    LAB_NAMES = ["MCA", "BCA", "UIT", "PIT", "UCS", "PCS", "PDS"]
