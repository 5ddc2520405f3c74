import hashlib
import hmac

import pytest

from config import Settings
from provably_fair import chain_from_secret, save_chain

SECRET = "7f" * 32


def reference_roll(server_seed, client_seed, nonce):
    # reimplementação independente, como faria um cliente verificador
    h = hmac.new(server_seed.encode(), f"{client_seed}:{nonce}".encode(), hashlib.sha256).hexdigest()
    return (int(h[:8], 16) % 10001) / 100


@pytest.fixture
def chain():
    return chain_from_secret(SECRET, 5)


@pytest.fixture
def chain_file(tmp_path, chain):
    path = tmp_path / "chain.json"
    save_chain(chain, str(path))
    return path


@pytest.fixture
def settings(tmp_path, chain_file):
    return Settings(database_url=f"sqlite:///{tmp_path / 'test.db'}", chain_file=str(chain_file))


@pytest.fixture
def app(settings):
    from app import create_app
    app = create_app(settings)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
