import os
from dotenv import load_dotenv

load_dotenv()

user = os.getenv("DB_USER")
password = os.getenv("DB_PASSWORD")
host = os.getenv("DB_HOST")
port = os.getenv("DB_PORT", "5432")
db_name = os.getenv("DB_NAME")
database_url = os.getenv("DATABASE_URL")
redis_url = os.getenv("REDIS_URL")
gateway_token = os.getenv("GATEWAY_TOKEN")
log_level = os.getenv("LOG_LEVEL", "INFO")

starting_balance = int(os.getenv("STARTING_BALANCE", "10000"))
daily_bonus = int(os.getenv("DAILY_BONUS", "1000"))
daily_bonus_cooldown_hours = int(os.getenv("DAILY_BONUS_COOLDOWN_HOURS", "24"))
min_bet = int(os.getenv("MIN_BET", "1"))
max_bet = int(os.getenv("MAX_BET", "10000"))

idempotency_ttl_seconds = int(os.getenv("IDEMPOTENCY_TTL_SECONDS", "30"))
preview_ttl_seconds = int(os.getenv("PREVIEW_TTL_SECONDS", "300"))
blackjack_session_ttl_seconds = int(os.getenv("BLACKJACK_SESSION_TTL_SECONDS", "3600"))
store_timeout_seconds = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))
ledger_max_retries = int(os.getenv("LEDGER_MAX_RETRIES", "5"))

if __name__ == "__main__":
    print(user, host, port, db_name, database_url, redis_url)
