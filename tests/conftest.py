import pytest

from config import config
from utils.kv_store import MemoryKVStore, set_kv_store


@pytest.fixture
def store():
    """Fresh in-memory KV store installed as the process-wide store."""
    kv = MemoryKVStore()
    set_kv_store(kv)
    yield kv
    set_kv_store(None)


@pytest.fixture
def client(store):
    from app import create_app
    app = create_app()
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def api():
    """Build a URL under the API prefix."""
    prefix = config.API_PREFIX.rstrip('/')
    return lambda path: f"{prefix}{path}"


@pytest.fixture
def patron_registration():
    return {
        'userType': 'patron',
        'fullName': 'Test User',
        'email': 't@example.com',
        'mobile': '9876543210',
        'aadharId': '123412341234',
        'address': '12 Mangrove Road',
        'pincode': '682001',
        'state': 'Kerala',
        'walletAddress': '0x00000000000000000000000000000000000000aa'
    }


@pytest.fixture
def client_registration():
    return {
        'userType': 'creditClient',
        'fullName': 'Coastal Carbon Ltd',
        'entityType': 'company',
        'email': 'ops@coastal.example',
        'mobile': '9123456780',
        'aadharId': '999988887777',
        'address': '4 Harbour Street',
        'pincode': '600001',
        'state': 'Tamil Nadu',
        'walletAddress': '0x00000000000000000000000000000000000000bb'
    }
