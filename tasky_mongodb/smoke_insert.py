# smoke_insert.py
from pymongo.errors import WriteError

from .connect_db import database_session


def smoke_insert(db) -> bool:
    """Insert one good and one bad user; True when the server rejects the bad one."""
    users = db["users"]

    print("\n Test 1: Inserting valid user...")
    result = users.insert_one(
        {"name": "Smoke Test", "email": "smoke@example.com", "password": "not-a-real-hash"}
    )
    print(f" Success! Inserted user with ID: {result.inserted_id}")

    print("\n Test 2: Inserting invalid user (missing 'password')...")
    try:
        bad = users.insert_one({"name": "No Password", "email": "nopass@example.com"})
    except WriteError as e:
        print(" Validation working! Rejected invalid data:")
        print(f"   {e}")
        rejected = True
    else:
        print(f" Unexpectedly succeeded: {bad.inserted_id}")
        print("   (This means validation isn't enabled)")
        users.delete_one({"_id": bad.inserted_id})
        rejected = False
    finally:
        users.delete_one({"_id": result.inserted_id})

    return rejected


if __name__ == "__main__":
    with database_session() as db:
        raise SystemExit(0 if smoke_insert(db) else 1)
