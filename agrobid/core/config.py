import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

class Settings:
    PROJECT_NAME: str = "AgroBid"
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgres://postgres:password@db:5432/agrobid")
    SECRET_KEY: str = os.getenv("SECRET_KEY", "supersecretkey")
    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 1 day

    # Bidding rules
    BID_MIN_INCREMENT: Decimal = Decimal(os.getenv("BID_MIN_INCREMENT", "50"))

    # Settlement sweep
    AUCTION_SWEEP_ENABLED: bool = os.getenv("AUCTION_SWEEP_ENABLED", "true").lower() == "true"
    AUCTION_SWEEP_INTERVAL_SECONDS: int = int(os.getenv("AUCTION_SWEEP_INTERVAL_SECONDS", "60"))

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    RATE_LIMIT_DEFAULT: str = os.getenv("RATE_LIMIT_DEFAULT", "100/minute")
    BID_RATE_LIMIT: str = os.getenv("BID_RATE_LIMIT", "30/minute")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def get_database_url(self):
        url = self.DATABASE_URL
        # Fix for SQLAlchemy compatibility (if using 'postgres://' instead of 'postgresql+psycopg2://')
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+psycopg2://", 1)
        return url

    def is_sqlite(self) -> bool:
        return self.get_database_url().startswith("sqlite")

settings = Settings()
