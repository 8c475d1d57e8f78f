import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    # Flask
    SECRET_KEY: str = os.getenv('FLASK_SECRET_KEY', 'dev-secret-key-change-in-production')
    ENV: str = os.getenv('FLASK_ENV', 'development')
    DEBUG: bool = os.getenv('FLASK_DEBUG', 'True').lower() == 'true'
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO').upper()

    # All JSON endpoints live under this prefix
    API_PREFIX: str = os.getenv('API_PREFIX', '/make-server-c7236e13')

    # Admin credentials
    ADMIN_USERNAME: str = os.getenv('ADMIN_USERNAME', 'admin')
    ADMIN_PASSWORD: str = os.getenv('ADMIN_PASSWORD', 'Qwerty')
    # When False the admin routes accept unauthenticated requests
    REQUIRE_ADMIN_TOKEN: bool = os.getenv('REQUIRE_ADMIN_TOKEN', 'False').lower() == 'true'

    # Supabase
    SUPABASE_URL: str = os.getenv('SUPABASE_URL', '')
    SUPABASE_KEY: str = os.getenv('SUPABASE_KEY', '')

    # Key-value store: 'supabase' or 'memory'
    KV_BACKEND: str = os.getenv('KV_BACKEND', 'supabase')
    KV_TABLE: str = os.getenv('KV_TABLE', 'kv_store_c7236e13')
    KV_MAX_RETRIES: int = int(os.getenv('KV_MAX_RETRIES', '5'))

    # Web3 (Sepolia test network)
    WEB3_RPC_URL: str = os.getenv('WEB3_RPC_URL', 'https://rpc.sepolia.org')
    WEB3_CONTRACT_ADDRESS: str = os.getenv('WEB3_CONTRACT_ADDRESS', '')
    # Wallet endpoint holding the user's unlocked accounts (e.g. Frame)
    WALLET_RPC_URL: str = os.getenv('WALLET_RPC_URL', 'http://127.0.0.1:1248')
    # Seconds between polls of the wallet for account / chain changes
    WALLET_POLL_INTERVAL: float = float(os.getenv('WALLET_POLL_INTERVAL', '1.0'))

    # Client side
    CLIENT_STORAGE_PATH: str = os.getenv(
        'CLIENT_STORAGE_PATH',
        os.path.join(os.path.expanduser('~'), '.bluemercantile', 'storage.json')
    )
    API_BASE_URL: str = os.getenv('API_BASE_URL', 'http://localhost:5000/make-server-c7236e13')


config = Config()
