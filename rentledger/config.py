import os
import logging
from dotenv import load_dotenv

load_dotenv()

# Fixed property roster used when the store has no houses yet: (id, house_number)
DEFAULT_HOUSES = [
    ("H3", "3"),
    ("H4", "4"),
    ("H5", "5"),
    ("H6", "6"),
    ("H8", "8"),
    ("H9", "9"),
]


class Config:
    # Bot Token (required only when the bot is started)
    BOT_TOKEN = os.getenv("BOT_TOKEN")

    # Landlord Telegram IDs allowed to use the bot
    OWNER_IDS = [int(x.strip()) for x in os.getenv("OWNER_IDS", "").split(",") if x.strip() and x.strip().isdigit()]

    # Store backend: "supabase" (REST) or "database" (SQLAlchemy)
    STORE_BACKEND = os.getenv("STORE_BACKEND", "supabase").strip().lower()

    # Supabase (PostgREST) Settings
    SUPABASE_PROJECT_URL = os.getenv("SUPABASE_PROJECT_URL")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
    STORE_TIMEOUT = float(os.getenv("STORE_TIMEOUT", "10"))

    # Database Configuration
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASS = os.getenv("DB_PASS", "postgres")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "rent_ledger")

    # Ledger Settings
    RENT_DUE_DAY = int(os.getenv("RENT_DUE_DAY", "5"))
    if not 1 <= RENT_DUE_DAY <= 28:
        raise ValueError(f"RENT_DUE_DAY must be between 1 and 28, got {RENT_DUE_DAY}")
    CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₹")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def DATABASE_URL(self):
        # Prefer DATABASE_URL env var if set (for SQLite support)
        url = os.getenv("DATABASE_URL")
        if url:
            return url

        # Build PostgreSQL URL
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    def require_bot_token(self) -> str:
        if not self.BOT_TOKEN:
            raise ValueError(
                "BOT_TOKEN is required! Set it in .env file.\n"
                "Get token from @BotFather on Telegram."
            )
        return self.BOT_TOKEN

    def require_supabase(self) -> tuple[str, str]:
        """Return (project_url, anon_key), reporting every missing variable at once."""
        missing = []
        if not self.SUPABASE_PROJECT_URL:
            missing.append("SUPABASE_PROJECT_URL")
        if not self.SUPABASE_ANON_KEY:
            missing.append("SUPABASE_ANON_KEY")

        if missing:
            verb = "are" if len(missing) > 1 else "is"
            raise ValueError(
                f"{' and '.join(missing)} {verb} not defined in environment variables. "
                "Set them in .env file or in the deployment settings."
            )
        return self.SUPABASE_PROJECT_URL.rstrip("/"), self.SUPABASE_ANON_KEY

config = Config()

# Log configuration on startup
logging.info(f"Ledger configured: store={config.STORE_BACKEND}, rent due day={config.RENT_DUE_DAY}")
