import os

from dotenv import load_dotenv

MB = 1024 * 1024


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def database_url() -> str:
    url = os.getenv("DATABASE_URL", "sqlite:///local.db")
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def load_config() -> dict:
    """환경변수(.env 포함)에서 서버 설정을 읽는다."""
    load_dotenv()
    return {
        "SQLALCHEMY_DATABASE_URI": database_url(),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "MAX_CONTENT_LENGTH": int(os.getenv("MAX_CONTENT_LENGTH", 30 * MB)),
        "UPLOAD_DIR": os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "uploads")),
        "IMAGE_STORAGE": os.getenv("IMAGE_STORAGE", "disk"),
        "PUBLIC_BASE_URL": os.getenv("PUBLIC_BASE_URL", ""),
        "GEMINI_API_KEY": os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY", ""),
        "GEMINI_IMAGE_MODEL": os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image-preview"),
        "GENERATION_TIMEOUT": float(os.getenv("GENERATION_TIMEOUT", 120)),
        "ANTHROPIC_API_KEY": os.getenv("ANTHROPIC_API_KEY", ""),
        "ADVISOR_MODEL": os.getenv("ADVISOR_MODEL", "claude-sonnet-4-5-20250929"),
        "ADMIN_PASSWORD": os.getenv("ADMIN_PASSWORD", ""),
        "SEED_DEFAULTS": _flag("SEED_DEFAULTS", True),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        "PORT": int(os.getenv("PORT", 5000)),
    }
