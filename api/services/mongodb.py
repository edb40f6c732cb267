# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB case store with connection pooling and multi-document transactions.
"""

import os
import re
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Type
from pymongo import MongoClient, ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError,
    PyMongoError
)
from bson import ObjectId

from domain.cases import ACTIVE_STATUSES
from domain.geo import BoundingBox
from models.base import BaseEntity, utc_now
from models.entities import (
    Case, CaseComment, CaseUpdate, CaseVolunteer, Notification, PushToken, VolunteerProfile
)
from models.enums import VolunteerStatus
from services.errors import ConflictError, InternalError
from services.storage import CaseFilters, CaseStore, PaginationResult, storage_fields, storage_value

logger = logging.getLogger(__name__)

CASES = "cases"
VOLUNTEERS = "case_volunteers"
UPDATES = "case_updates"
COMMENTS = "case_comments"
USERS = "users"
NOTIFICATIONS = "notifications"


def _object_id(doc_id: str) -> Any:
    """Use an ObjectId key when the identifier is one, the raw string otherwise."""
    return ObjectId(doc_id) if ObjectId.is_valid(doc_id) else doc_id


def _box_query(prefix: str, box: BoundingBox) -> Dict[str, Any]:
    query = {f"{prefix}.latitude": {"$gte": box.min_lat, "$lte": box.max_lat}}
    if not box.spans_all_longitudes:
        query[f"{prefix}.longitude"] = {"$gte": box.min_lng, "$lte": box.max_lng}
    return query


class MongoCaseStore(CaseStore):
    """Case store backed by MongoDB collections."""

    def __init__(self, connection_string: str = None, database_name: str = None,
                 client: Optional[MongoClient] = None):
        """Initialize MongoDB store with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/rescue_network_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'rescue_network_dev')
        self._client: Optional[MongoClient] = client
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB case store initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    tz_aware=True
                )
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise InternalError("STORAGE_ERROR", "Storage is unavailable") from e

        return self._client

    @property
    def database(self) -> Database:
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """
        Translate driver failures into application errors.

        Transaction write conflicts carry the TransientTransactionError label;
        they become a retryable WRITE_CONFLICT. Anything else is STORAGE_ERROR.
        """
        try:
            yield
        except PyMongoError as e:
            if e.has_error_label("TransientTransactionError"):
                logger.warning(f"MongoDB {operation} hit a transaction conflict: {e}")
                raise ConflictError("WRITE_CONFLICT", "The case changed concurrently, retry the request") from e
            logger.error(f"MongoDB {operation} failed: {e}")
            raise InternalError("STORAGE_ERROR", f"Storage operation failed: {operation}") from e

    @staticmethod
    def _to_document(entity: BaseEntity) -> Dict[str, Any]:
        document = entity.to_document()
        document["_id"] = _object_id(document.pop("id"))
        return document

    @staticmethod
    def _from_document(model: Type[BaseEntity], document: Optional[Dict[str, Any]]):
        if document is None:
            return None
        document = dict(document)
        document["id"] = str(document.pop("_id"))
        return model.from_document(document)

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        with self._guard("transaction"):
            with self.client.start_session() as session:
                with session.start_transaction():
                    yield session

    # Cases

    def insert_case(self, case: Case, session: Any = None) -> None:
        with self._guard("insert_case"):
            self.get_collection(CASES).insert_one(self._to_document(case), session=session)
        logger.info(f"Created case {case.id}")

    def get_case(self, case_id: str, session: Any = None) -> Optional[Case]:
        with self._guard("get_case"):
            document = self.get_collection(CASES).find_one({"_id": _object_id(case_id)}, session=session)
        return self._from_document(Case, document)

    def update_case_fields(self, case_id: str, fields: Dict[str, Any],
                           session: Any = None) -> Optional[Case]:
        updates = storage_fields({**fields, "updated_at": utc_now()})
        with self._guard("update_case_fields"):
            document = self.get_collection(CASES).find_one_and_update(
                {"_id": _object_id(case_id)},
                {"$set": updates},
                return_document=ReturnDocument.AFTER,
                session=session
            )
        return self._from_document(Case, document)

    def transition_case_status(self, case_id: str, from_statuses: Sequence[str], new_status: str,
                               stamps: Optional[Dict[str, Any]] = None, session: Any = None) -> bool:
        updates = storage_fields({**(stamps or {}), "status": new_status, "updated_at": utc_now()})
        with self._guard("transition_case_status"):
            result = self.get_collection(CASES).update_one(
                {"_id": _object_id(case_id), "status": {"$in": [storage_value(s) for s in from_statuses]}},
                {"$set": updates},
                session=session
            )
        return result.matched_count == 1

    def increment_volunteer_count(self, case_id: str, session: Any = None) -> bool:
        with self._guard("increment_volunteer_count"):
            result = self.get_collection(CASES).update_one(
                {
                    "_id": _object_id(case_id),
                    "status": {"$in": [s.value for s in ACTIVE_STATUSES]},
                    "$expr": {"$lt": ["$volunteerCount", "$maxVolunteers"]}
                },
                {"$inc": {"volunteerCount": 1}, "$set": {"updatedAt": utc_now()}},
                session=session
            )
        return result.matched_count == 1

    def decrement_volunteer_count(self, case_id: str, session: Any = None) -> None:
        with self._guard("decrement_volunteer_count"):
            self.get_collection(CASES).update_one(
                {"_id": _object_id(case_id)},
                [{"$set": {
                    "volunteerCount": {"$max": [0, {"$subtract": ["$volunteerCount", 1]}]},
                    "updatedAt": utc_now()
                }}],
                session=session
            )

    @staticmethod
    def _case_query(filters: CaseFilters) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if filters.case_type:
            query["caseType"] = storage_value(filters.case_type)
        if filters.status:
            query["status"] = storage_value(filters.status)
        if filters.urgency:
            query["urgency"] = storage_value(filters.urgency)
        if filters.reporter_id:
            query["reporterId"] = filters.reporter_id
        if filters.case_ids is not None:
            query["_id"] = {"$in": [_object_id(cid) for cid in filters.case_ids]}
        if filters.q:
            pattern = {"$regex": re.escape(filters.q), "$options": "i"}
            query["$or"] = [{"title": pattern}, {"address": pattern}]
        return query

    def find_cases(self, filters: CaseFilters, page: int = 1, limit: int = 20) -> PaginationResult:
        query = self._case_query(filters)
        with self._guard("find_cases"):
            collection = self.get_collection(CASES)
            total = collection.count_documents(query)
            cursor = collection.find(query).sort("createdAt", DESCENDING).skip((page - 1) * limit).limit(limit)
            items = [self._from_document(Case, doc) for doc in cursor]
        logger.debug(f"Paginated {len(items)} cases (page {page})")
        return PaginationResult(items, total, page, limit)

    def find_cases_in_box(self, box: BoundingBox, statuses: Sequence[str]) -> List[Case]:
        query = _box_query("location", box)
        query["status"] = {"$in": [storage_value(s) for s in statuses]}
        with self._guard("find_cases_in_box"):
            return [self._from_document(Case, doc) for doc in self.get_collection(CASES).find(query)]

    # Volunteer records

    def insert_volunteer(self, record: CaseVolunteer, session: Any = None) -> None:
        try:
            with self._guard("insert_volunteer"):
                self.get_collection(VOLUNTEERS).insert_one(self._to_document(record), session=session)
        except InternalError as e:
            if isinstance(e.__cause__, DuplicateKeyError):
                raise ConflictError("ALREADY_ACCEPTED", "Volunteer already has a record on this case") from e
            raise

    def get_volunteer(self, case_id: str, volunteer_id: str,
                      session: Any = None) -> Optional[CaseVolunteer]:
        with self._guard("get_volunteer"):
            document = self.get_collection(VOLUNTEERS).find_one(
                {"caseId": case_id, "volunteerId": volunteer_id}, session=session
            )
        return self._from_document(CaseVolunteer, document)

    def update_volunteer(self, case_id: str, volunteer_id: str, expected_statuses: Sequence[str],
                         fields: Dict[str, Any], session: Any = None) -> bool:
        with self._guard("update_volunteer"):
            result = self.get_collection(VOLUNTEERS).update_one(
                {
                    "caseId": case_id,
                    "volunteerId": volunteer_id,
                    "status": {"$in": [storage_value(s) for s in expected_statuses]}
                },
                {"$set": storage_fields(fields)},
                session=session
            )
        return result.matched_count == 1

    def list_volunteers(self, case_id: str, include_withdrawn: bool = True,
                        session: Any = None) -> List[CaseVolunteer]:
        query: Dict[str, Any] = {"caseId": case_id}
        if not include_withdrawn:
            query["status"] = {"$ne": VolunteerStatus.WITHDRAWN.value}
        with self._guard("list_volunteers"):
            cursor = self.get_collection(VOLUNTEERS).find(query, session=session).sort("acceptedAt", ASCENDING)
            return [self._from_document(CaseVolunteer, doc) for doc in cursor]

    def list_volunteer_case_ids(self, volunteer_id: str) -> List[str]:
        with self._guard("list_volunteer_case_ids"):
            cursor = self.get_collection(VOLUNTEERS).find(
                {"volunteerId": volunteer_id, "status": {"$ne": VolunteerStatus.WITHDRAWN.value}},
                {"caseId": 1}
            )
            return [doc["caseId"] for doc in cursor]

    def count_volunteer_records(self, volunteer_id: str, statuses: Optional[Sequence[str]] = None) -> int:
        query: Dict[str, Any] = {"volunteerId": volunteer_id}
        if statuses is not None:
            query["status"] = {"$in": [storage_value(s) for s in statuses]}
        with self._guard("count_volunteer_records"):
            return self.get_collection(VOLUNTEERS).count_documents(query)

    # Timeline

    def append_update(self, update: CaseUpdate, session: Any = None) -> None:
        with self._guard("append_update"):
            self.get_collection(UPDATES).insert_one(self._to_document(update), session=session)

    def list_updates(self, case_id: str) -> List[CaseUpdate]:
        with self._guard("list_updates"):
            cursor = self.get_collection(UPDATES).find({"caseId": case_id}).sort("createdAt", ASCENDING)
            return [self._from_document(CaseUpdate, doc) for doc in cursor]

    # Comments

    def insert_comment(self, comment: CaseComment) -> None:
        with self._guard("insert_comment"):
            self.get_collection(COMMENTS).insert_one(self._to_document(comment))

    def get_comment(self, comment_id: str) -> Optional[CaseComment]:
        with self._guard("get_comment"):
            document = self.get_collection(COMMENTS).find_one({"_id": _object_id(comment_id)})
        return self._from_document(CaseComment, document)

    def list_comments(self, case_id: str, page: int = 1, limit: int = 20) -> PaginationResult:
        query = {"caseId": case_id}
        with self._guard("list_comments"):
            collection = self.get_collection(COMMENTS)
            total = collection.count_documents(query)
            cursor = collection.find(query).sort("createdAt", ASCENDING).skip((page - 1) * limit).limit(limit)
            items = [self._from_document(CaseComment, doc) for doc in cursor]
        return PaginationResult(items, total, page, limit)

    def delete_comment(self, comment_id: str) -> bool:
        with self._guard("delete_comment"):
            result = self.get_collection(COMMENTS).delete_one({"_id": _object_id(comment_id)})
        return result.deleted_count == 1

    # Users

    def get_user(self, user_id: str, session: Any = None) -> Optional[VolunteerProfile]:
        with self._guard("get_user"):
            document = self.get_collection(USERS).find_one({"_id": _object_id(user_id)}, session=session)
        return self._from_document(VolunteerProfile, document)

    def save_user(self, user: VolunteerProfile) -> None:
        document = self._to_document(user)
        with self._guard("save_user"):
            self.get_collection(USERS).replace_one({"_id": document["_id"]}, document, upsert=True)

    def update_user_fields(self, user_id: str, fields: Dict[str, Any]) -> Optional[VolunteerProfile]:
        updates = storage_fields({**fields, "updated_at": utc_now()})
        with self._guard("update_user_fields"):
            document = self.get_collection(USERS).find_one_and_update(
                {"_id": _object_id(user_id)},
                {"$set": updates},
                return_document=ReturnDocument.AFTER
            )
        return self._from_document(VolunteerProfile, document)

    def find_volunteers_in_box(self, box: BoundingBox) -> List[VolunteerProfile]:
        query = {
            "isAvailable": True,
            "isActive": True,
            "$or": [_box_query("location", box), _box_query("preferences.centerLocation", box)]
        }
        with self._guard("find_volunteers_in_box"):
            return [self._from_document(VolunteerProfile, doc) for doc in self.get_collection(USERS).find(query)]

    def increment_user_counter(self, user_id: str, counter: str, amount: int = 1) -> None:
        field = storage_fields({counter: amount})
        with self._guard("increment_user_counter"):
            result = self.get_collection(USERS).update_one({"_id": _object_id(user_id)}, {"$inc": field})
        if result.matched_count == 0:
            logger.warning(f"Cannot increment {counter} for unknown user {user_id}")

    def add_push_token(self, user_id: str, token: PushToken) -> bool:
        token_doc = token.model_dump(by_alias=True)
        with self._guard("add_push_token"):
            result = self.get_collection(USERS).update_one(
                {"_id": _object_id(user_id)},
                [{"$set": {"pushTokens": {"$concatArrays": [
                    {"$filter": {
                        "input": {"$ifNull": ["$pushTokens", []]},
                        "cond": {"$ne": ["$$this.token", token.token]}
                    }},
                    [{"$literal": token_doc}]
                ]}}}]
            )
        return result.matched_count == 1

    def remove_push_token(self, user_id: str, token: str) -> bool:
        with self._guard("remove_push_token"):
            result = self.get_collection(USERS).update_one(
                {"_id": _object_id(user_id), "pushTokens.token": token},
                {"$pull": {"pushTokens": {"token": token}}, "$set": {"updatedAt": utc_now()}}
            )
        return result.modified_count == 1

    def get_push_tokens(self, user_id: str) -> List[str]:
        with self._guard("get_push_tokens"):
            document = self.get_collection(USERS).find_one({"_id": _object_id(user_id)}, {"pushTokens": 1})
        if not document:
            return []
        return [t["token"] for t in document.get("pushTokens", []) if t.get("isActive", True)]

    # Notification inbox

    def insert_notifications(self, notifications: List[Notification]) -> None:
        if not notifications:
            return
        with self._guard("insert_notifications"):
            self.get_collection(NOTIFICATIONS).insert_many([self._to_document(n) for n in notifications])

    def list_notifications(self, user_id: str, page: int = 1, limit: int = 20) -> PaginationResult:
        query = {"userId": user_id}
        with self._guard("list_notifications"):
            collection = self.get_collection(NOTIFICATIONS)
            total = collection.count_documents(query)
            cursor = collection.find(query).sort("createdAt", DESCENDING).skip((page - 1) * limit).limit(limit)
            items = [self._from_document(Notification, doc) for doc in cursor]
        return PaginationResult(items, total, page, limit)

    def count_unread_notifications(self, user_id: str) -> int:
        with self._guard("count_unread_notifications"):
            return self.get_collection(NOTIFICATIONS).count_documents({"userId": user_id, "isRead": False})

    def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        with self._guard("mark_notification_read"):
            result = self.get_collection(NOTIFICATIONS).update_one(
                {"_id": _object_id(notification_id), "userId": user_id},
                {"$set": {"isRead": True}}
            )
        return result.matched_count == 1

    def mark_all_notifications_read(self, user_id: str) -> int:
        with self._guard("mark_all_notifications_read"):
            result = self.get_collection(NOTIFICATIONS).update_many(
                {"userId": user_id, "isRead": False},
                {"$set": {"isRead": True}}
            )
        return result.modified_count

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            return {
                'status': 'healthy',
                'backend': 'mongodb',
                'ping': result.get('ok') == 1,
                'database': self.database_name
            }
        except (PyMongoError, InternalError) as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'backend': 'mongodb',
                'error': str(e),
                'database': self.database_name
            }

    # Index Management

    def create_indexes(self) -> None:
        """Create performance and uniqueness indexes."""
        with self._guard("create_indexes"):
            logger.info("Creating MongoDB indexes...")

            cases = self.get_collection(CASES)
            cases.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
            cases.create_index([("location.latitude", ASCENDING), ("location.longitude", ASCENDING)])
            cases.create_index("reporterId")

            volunteers = self.get_collection(VOLUNTEERS)
            volunteers.create_index([("caseId", ASCENDING), ("volunteerId", ASCENDING)], unique=True)
            volunteers.create_index("volunteerId")

            self.get_collection(UPDATES).create_index([("caseId", ASCENDING), ("createdAt", ASCENDING)])
            self.get_collection(COMMENTS).create_index([("caseId", ASCENDING), ("createdAt", ASCENDING)])

            users = self.get_collection(USERS)
            users.create_index([("isAvailable", ASCENDING), ("location.latitude", ASCENDING)])
            users.create_index([("isAvailable", ASCENDING), ("preferences.centerLocation.latitude", ASCENDING)])

            notifications = self.get_collection(NOTIFICATIONS)
            notifications.create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
            notifications.create_index([("userId", ASCENDING), ("isRead", ASCENDING)])

            logger.info("MongoDB indexes created successfully")
