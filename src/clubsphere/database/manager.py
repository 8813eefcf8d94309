"""
# Database Management Module

This module provides the **MongoDB infrastructure** for the ClubSphere API.
`DatabaseManager` owns the Motor client and its connection pool, creates the
indexes the approval workflow depends on, and bounds every storage call with
a timeout so that a stalled backend fails requests closed instead of hanging them.

## Key Features

### 1. Connection Lifecycle
- **Async Initialization**: `connect()` runs during application startup with
  exponential backoff (1s, 2s, 4s).
- **Graceful Shutdown**: `disconnect()` closes the pool.
- **Health Monitoring**: `health_check()` pings the server.

### 2. Bounded Operations
`run_with_timeout()` wraps any collection coroutine in `asyncio.wait_for`.
Timeouts and driver errors surface as `InternalError`; the original cause is
logged, never returned to the caller. Duplicate-key errors are re-raised
unchanged so callers can translate them to `ConflictError`.

### 3. Workflow Indexes
- `users.email` unique: one Principal per identity.
- `manager_applications.email` unique: one live application per email.
- `role_grants (clubId, userEmail)` unique: natural key of the derived grant.
- `memberships (clubId, userEmail)` unique while `status` is pending or active.

There is no multi-document transaction anywhere in the application; each
mutation is a single-document (conditional) write.

## Usage

```python
from clubsphere.database import db_manager

await db_manager.connect()
clubs = db_manager.get_collection("clubs")
club = await db_manager.run_with_timeout(clubs.find_one({"_id": club_id}), "clubs.find_one")
await db_manager.disconnect()
```

## Module Attributes

Attributes:
    db_manager (DatabaseManager): Global singleton used throughout the application.
"""

import asyncio
import time
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError, ServerSelectionTimeoutError

from clubsphere.config import settings
from clubsphere.exceptions import InternalError
from clubsphere.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")

T = TypeVar("T")

USERS_COLLECTION = "users"
CLUBS_COLLECTION = "clubs"
MEMBERSHIPS_COLLECTION = "memberships"
EVENTS_COLLECTION = "events"
EVENT_REGISTRATIONS_COLLECTION = "event_registrations"
PAYMENTS_COLLECTION = "payments"
MANAGER_APPLICATIONS_COLLECTION = "manager_applications"
ROLE_GRANTS_COLLECTION = "role_grants"


class DatabaseManager:
    """
    Manages MongoDB connections, collections, and bounded database operations.

    **Lifecycle:**
    1. **Instantiation**: `client` and `database` are `None`.
    2. **Connection**: `connect()` establishes the pool.
    3. **Operations**: `get_collection()` plus `run_with_timeout()`.
    4. **Shutdown**: `disconnect()`.

    Attributes:
        client (`Optional[AsyncIOMotorClient]`): Motor client, `None` until connected.
        database (`Optional[AsyncIOMotorDatabase]`): Selected database, `None` until connected.
    """

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self._connection_retries = 3

    def _connection_string(self) -> str:
        if settings.MONGODB_USERNAME and settings.MONGODB_PASSWORD:
            password = settings.MONGODB_PASSWORD.get_secret_value()
            db_logger.debug("Using authenticated connection to MongoDB")
            return (
                f"mongodb://{settings.MONGODB_USERNAME}:{password}@"
                f"{settings.MONGODB_URL.replace('mongodb://', '')}"
            )
        db_logger.debug("Using unauthenticated connection to MongoDB")
        return settings.MONGODB_URL

    async def connect(self):
        """
        Establish the MongoDB connection with exponential backoff retry logic.

        Raises:
            ServerSelectionTimeoutError: If MongoDB is unreachable after all attempts.
            ConnectionFailure: If authentication fails or the connection is refused.
        """
        start_time = time.time()
        db_logger.info("Starting MongoDB connection process")

        for attempt in range(self._connection_retries):
            attempt_start = time.time()
            try:
                db_logger.info("Connection attempt %d/%d to MongoDB", attempt + 1, self._connection_retries)
                db_logger.info(
                    "MongoDB connection config - Database: %s, MaxPool: %d, MinPool: %d, ServerTimeout: %dms, ConnTimeout: %dms, SocketTimeout: %dms",
                    settings.MONGODB_DATABASE,
                    settings.MONGODB_MAX_POOL_SIZE,
                    settings.MONGODB_MIN_POOL_SIZE,
                    settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    settings.MONGODB_CONNECTION_TIMEOUT,
                    settings.MONGODB_SOCKET_TIMEOUT,
                )

                self.client = AsyncIOMotorClient(
                    self._connection_string(),
                    serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    connectTimeoutMS=settings.MONGODB_CONNECTION_TIMEOUT,
                    socketTimeoutMS=settings.MONGODB_SOCKET_TIMEOUT,
                    maxPoolSize=settings.MONGODB_MAX_POOL_SIZE,
                    minPoolSize=settings.MONGODB_MIN_POOL_SIZE,
                )
                self.database = self.client[settings.MONGODB_DATABASE]

                ping_start = time.time()
                await self.client.admin.command("ping")
                ping_duration = time.time() - ping_start

                perf_logger.info(
                    "MongoDB connection established successfully in %.3fs (ping: %.3fs)",
                    time.time() - start_time,
                    ping_duration,
                )
                db_logger.info("Successfully connected to MongoDB database: %s", settings.MONGODB_DATABASE)
                return

            except (ServerSelectionTimeoutError, ConnectionFailure) as e:
                perf_logger.warning(
                    "Connection attempt %d failed after %.3fs", attempt + 1, time.time() - attempt_start
                )
                db_logger.warning(
                    "Failed to connect to MongoDB (attempt %d/%d): %s", attempt + 1, self._connection_retries, e
                )
                if attempt == self._connection_retries - 1:
                    db_logger.error("All connection attempts failed after %.3fs", time.time() - start_time)
                    raise
                backoff_time = 2**attempt
                db_logger.info("Waiting %.1fs before retry (exponential backoff)", backoff_time)
                await asyncio.sleep(backoff_time)

    async def disconnect(self):
        """Close all pooled connections. Safe to call when not connected."""
        start_time = time.time()
        db_logger.info("Starting MongoDB disconnection process")
        if self.client:
            self.client.close()
            perf_logger.info("MongoDB disconnection completed in %.3fs", time.time() - start_time)
            db_logger.info("Successfully disconnected from MongoDB")
        else:
            db_logger.warning("Disconnect called but no active MongoDB connection found")
        self.client = None
        self.database = None

    async def health_check(self) -> bool:
        """Return True when the server answers a ping within the storage timeout."""
        if not self.client:
            health_logger.warning("Health check requested without an active client")
            return False
        try:
            await asyncio.wait_for(
                self.client.admin.command("ping"), timeout=settings.STORAGE_OPERATION_TIMEOUT_SECONDS
            )
            return True
        except (asyncio.TimeoutError, PyMongoError) as e:
            health_logger.error("MongoDB health check failed: %s", e)
            return False

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """
        Return a Motor collection from the connected database.

        Raises:
            ConnectionError: If `connect()` has not been called.
        """
        if self.database is None:
            db_logger.error("Attempted to get collection '%s' without database connection", collection_name)
            raise ConnectionError("Database not connected. Call connect() first.")
        return self.database[collection_name]

    async def run_with_timeout(self, operation: Awaitable[T], description: str) -> T:
        """
        Await a storage operation bounded by `STORAGE_OPERATION_TIMEOUT_SECONDS`.

        Args:
            operation: The collection coroutine, e.g. `collection.update_one(...)`.
            description: Short label used in logs (`"memberships.update_one"`).

        Returns:
            The operation's result.

        Raises:
            DuplicateKeyError: Propagated unchanged for the caller to translate.
            InternalError: On timeout or any other driver failure.
        """
        start_time = time.time()
        try:
            result = await asyncio.wait_for(operation, timeout=settings.STORAGE_OPERATION_TIMEOUT_SECONDS)
        except DuplicateKeyError:
            raise
        except asyncio.TimeoutError:
            db_logger.error(
                "Storage operation %s timed out after %.1fs", description, settings.STORAGE_OPERATION_TIMEOUT_SECONDS
            )
            raise InternalError()
        except (PyMongoError, ConnectionError) as e:
            db_logger.error("Storage operation %s failed: %s", description, e, exc_info=True)
            raise InternalError()
        perf_logger.debug("%s completed in %.3fs", description, time.time() - start_time)
        return result

    async def find_many(
        self,
        collection_name: str,
        query: Dict[str, Any],
        sort: Optional[List[Any]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        """Run a bounded `find` and return the documents as a list."""
        cursor = self.get_collection(collection_name).find(query)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return await self.run_with_timeout(cursor.to_list(length=limit or None), f"{collection_name}.find")

    async def create_indexes(self):
        """Create the indexes the approval workflow relies on. Idempotent."""
        start_time = time.time()
        db_logger.info("Starting database index creation process")

        try:
            users = self.get_collection(USERS_COLLECTION)
            await users.create_index("email", unique=True)
            await users.create_index("globalRole")

            clubs = self.get_collection(CLUBS_COLLECTION)
            await clubs.create_index("ownerEmail")
            await clubs.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])

            memberships = self.get_collection(MEMBERSHIPS_COLLECTION)
            await memberships.create_index(
                [("clubId", ASCENDING), ("userEmail", ASCENDING)],
                unique=True,
                name="unique_live_membership",
                partialFilterExpression={"status": {"$in": ["pending", "active"]}},
            )
            await memberships.create_index([("userEmail", ASCENDING), ("status", ASCENDING)])

            events = self.get_collection(EVENTS_COLLECTION)
            await events.create_index([("clubId", ASCENDING), ("status", ASCENDING)])

            registrations = self.get_collection(EVENT_REGISTRATIONS_COLLECTION)
            await registrations.create_index([("eventId", ASCENDING), ("userEmail", ASCENDING)], unique=True)

            await self.get_collection(PAYMENTS_COLLECTION).create_index("userEmail")

            await self.get_collection(MANAGER_APPLICATIONS_COLLECTION).create_index("email", unique=True)

            await self.get_collection(ROLE_GRANTS_COLLECTION).create_index(
                [("clubId", ASCENDING), ("userEmail", ASCENDING)], unique=True
            )

            perf_logger.info("Database index creation completed successfully in %.3fs", time.time() - start_time)
            db_logger.info("Database indexes created successfully")

        except PyMongoError as e:
            perf_logger.error("Database index creation failed after %.3fs", time.time() - start_time)
            db_logger.error("Failed to create database indexes: %s", e)
            raise


db_manager = DatabaseManager()
