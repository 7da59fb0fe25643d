# connect_db.py
import os
from contextlib import contextmanager
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pymongo import MongoClient

load_dotenv()

DB_NAME = os.getenv("MONGO_DBNAME", "tasky")
VALIDATION_LEVEL = os.getenv("MONGO_VALIDATION_LEVEL", "strict")
VALIDATION_ACTION = os.getenv("MONGO_VALIDATION_ACTION", "error")
SERVER_SELECTION_TIMEOUT_MS = int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000"))


def build_mongo_uri(env=None) -> str:
    """Return ``MONGO_URI`` if set, otherwise assemble one from its parts."""
    env = os.environ if env is None else env
    uri = env.get("MONGO_URI")
    if uri:
        return uri
    return "mongodb://{user}:{password}@{host}:{port}/{db}?authSource=admin".format(
        user=quote_plus(env.get("MONGO_USERNAME", "")),
        password=quote_plus(env.get("MONGO_PASSWORD", "")),
        host=env.get("MONGO_HOST", "localhost"),
        port=env.get("MONGO_PORT", "27017"),
        db=env.get("MONGO_DBNAME", DB_NAME),
    )


def get_client(uri=None) -> MongoClient:
    client = MongoClient(
        uri or build_mongo_uri(),
        serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS,
    )
    try:
        # Test the connection
        client.admin.command("ping")
    except Exception as e:
        client.close()
        print(f"❌ Failed to connect to MongoDB: {e}")
        raise
    return client


def get_database(client=None):
    client = client or get_client()
    db = client[DB_NAME]
    print(f"✅ Connected to MongoDB database: {DB_NAME}")
    return db


@contextmanager
def database_session(uri=None):
    """Yield the configured database and close the client afterwards."""
    client = get_client(uri)
    try:
        yield get_database(client)
    finally:
        client.close()


if __name__ == "__main__":
    with database_session():
        pass
