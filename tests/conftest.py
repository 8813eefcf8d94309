"""
Shared fixtures.

`FakeDatabase` stands in for MongoDB: each collection implements the subset of
the Motor collection API the managers call, with single-document operations
applied atomically, so conditional-write races and upsert idempotency can be
exercised without a server.
"""

import copy
import re
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from bson import ObjectId
from jose import jwt
import pytest

from clubsphere.database import db_manager
from clubsphere.managers.identity_manager import CredentialVerifier, VerifiedIdentity

TEST_SECRET = "test-shared-secret"


def _match_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(key.startswith("$") for key in condition):
        for op, operand in condition.items():
            if op == "$ne" and value == operand:
                return False
            if op == "$in" and value not in operand:
                return False
            if op == "$nin" and value in operand:
                return False
            if op == "$exists" and (value is not None) != bool(operand):
                return False
            if op == "$gte" and (value is None or value < operand):
                return False
            if op == "$lte" and (value is None or value > operand):
                return False
            if op == "$regex":
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                if not isinstance(value, str) or not re.search(operand, value, flags):
                    return False
        return True
    return value == condition


def matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
            continue
        if not _match_condition(document.get(key), condition):
            return False
    return True


class FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents
        self._limit = 0

    def sort(self, keys, direction=None):
        if isinstance(keys, str):
            keys = [(keys, direction or 1)]
        for field, order in reversed(list(keys)):
            self._documents.sort(
                key=lambda d: (d.get(field) is None, d.get(field) if d.get(field) is not None else 0),
                reverse=order < 0,
            )
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    async def to_list(self, length: Optional[int] = None):
        documents = self._documents[: self._limit] if self._limit else self._documents
        return [copy.deepcopy(d) for d in (documents[:length] if length else documents)]


class FakeCollection:
    """In-memory Motor collection. `fail_next(method, exc)` injects one failure."""

    def __init__(self, name: str):
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self._failures: Dict[str, List[Exception]] = {}

    def fail_next(self, method: str, exc: Exception):
        self._failures.setdefault(method, []).append(exc)

    def _maybe_fail(self, method: str):
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def _find(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for document in self.documents:
            if matches(document, query):
                return document
        return None

    @staticmethod
    def _apply(document: Dict[str, Any], update: Dict[str, Any], inserting: bool):
        document.update(update.get("$set", {}))
        if inserting:
            document.update(update.get("$setOnInsert", {}))
        for key in update.get("$unset", {}):
            document.pop(key, None)

    def _upsert(self, query: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        document = {
            key: value
            for key, value in query.items()
            if not key.startswith("$") and not (isinstance(value, dict) and any(k.startswith("$") for k in value))
        }
        self._apply(document, update, inserting=True)
        document.setdefault("_id", ObjectId())
        self.documents.append(document)
        return document

    async def find_one(self, query: Dict[str, Any]):
        self._maybe_fail("find_one")
        document = self._find(query)
        return copy.deepcopy(document)

    def find(self, query: Optional[Dict[str, Any]] = None):
        return FakeCursor([d for d in self.documents if matches(d, query or {})])

    async def insert_one(self, document: Dict[str, Any]):
        self._maybe_fail("insert_one")
        stored = copy.deepcopy(document)
        stored.setdefault("_id", ObjectId())
        self.documents.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False):
        self._maybe_fail("update_one")
        document = self._find(query)
        if document is not None:
            self._apply(document, update, inserting=False)
            return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            created = self._upsert(query, update)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=created["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def find_one_and_update(self, query, update, upsert: bool = False, return_document=None):
        self._maybe_fail("find_one_and_update")
        document = self._find(query)
        if document is None:
            if not upsert:
                return None
            document = self._upsert(query, update)
        else:
            self._apply(document, update, inserting=False)
        return copy.deepcopy(document)

    async def find_one_and_delete(self, query: Dict[str, Any]):
        self._maybe_fail("find_one_and_delete")
        document = self._find(query)
        if document is not None:
            self.documents.remove(document)
        return copy.deepcopy(document)

    async def delete_one(self, query: Dict[str, Any]):
        self._maybe_fail("delete_one")
        document = self._find(query)
        if document is None:
            return SimpleNamespace(deleted_count=0)
        self.documents.remove(document)
        return SimpleNamespace(deleted_count=1)

    async def count_documents(self, query: Dict[str, Any]):
        return sum(1 for d in self.documents if matches(d, query))


class FakeDatabase:
    def __init__(self):
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    def get_collection(self, name: str) -> FakeCollection:
        return self[name]


@pytest.fixture
def fake_db(monkeypatch):
    """Route every `db_manager.get_collection` call to a fresh in-memory database."""
    database = FakeDatabase()
    monkeypatch.setattr(db_manager, "get_collection", database.get_collection)
    return database


def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def seed(fake_db):
    """Helpers that insert records directly into the fake database."""

    class Seeder:
        def user(self, email: str, global_role: str = "member", **fields) -> Dict[str, Any]:
            document = {"_id": ObjectId(), "email": email, "globalRole": global_role, "createdAt": now(), **fields}
            fake_db["users"].documents.append(document)
            return document

        def club(self, owner_email: str, status: str = "approved", **fields) -> Dict[str, Any]:
            document = {
                "_id": ObjectId(),
                "clubName": fields.pop("clubName", "Chess Club"),
                "ownerEmail": owner_email,
                "status": status,
                "membershipFee": 0,
                "createdAt": now(),
                **fields,
            }
            fake_db["clubs"].documents.append(document)
            return document

        def membership(self, club: Dict[str, Any], user_email: str, status: str = "pending") -> Dict[str, Any]:
            document = {
                "_id": ObjectId(),
                "clubId": str(club["_id"]),
                "userEmail": user_email,
                "status": status,
                "joinedAt": now(),
            }
            fake_db["memberships"].documents.append(document)
            return document

        def event(self, club: Dict[str, Any], status: str = "pending", **fields) -> Dict[str, Any]:
            document = {
                "_id": ObjectId(),
                "clubId": str(club["_id"]),
                "title": fields.pop("title", "Opening Night"),
                "eventDate": now(),
                "isPaid": False,
                "eventFee": 0,
                "status": status,
                "createdAt": now(),
                **fields,
            }
            fake_db["events"].documents.append(document)
            return document

        def application(self, email: str, status: str = "pending", **fields) -> Dict[str, Any]:
            document = {
                "_id": ObjectId(),
                "email": email,
                "name": fields.pop("name", "Applicant"),
                "reason": fields.pop("reason", "I run a club"),
                "status": status,
                "appliedAt": fields.pop("appliedAt", now()),
                **fields,
            }
            fake_db["manager_applications"].documents.append(document)
            return document

    return Seeder()


def identity(email: str) -> VerifiedIdentity:
    return VerifiedIdentity(email=email, subject=email.split("@")[0])


def make_token(email: Optional[str], secret: str = TEST_SECRET, **claims) -> str:
    payload = {"sub": (email or "anon").split("@")[0], **claims}
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def bearer(email: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(email)}"}


@pytest.fixture
def test_verifier(monkeypatch):
    """Verify request tokens with an HS256 test secret."""
    verifier = CredentialVerifier(shared_secret=TEST_SECRET, timeout=2.0)
    monkeypatch.setattr("clubsphere.routes.auth.dependencies.credential_verifier", verifier)
    return verifier
