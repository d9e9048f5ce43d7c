"""
Atlas MongoDB Repositories

pymongo implementations of the posting, detection and search-term
repositories. All three share one MongoClient per process.

Error Handling:
- Fail-fast: server errors propagate to the caller
- Uniqueness conflicts are resolved by upsert and never surface
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ASCENDING, MongoClient, UpdateOne
from pymongo.collection import Collection
from pymongo.errors import BulkWriteError, DuplicateKeyError

from src.common.dedupe import normalize_company_name
from src.common.schema import (
    DETECTIONS_COLLECTION,
    POSTINGS_COLLECTION,
    SEARCH_TERMS_COLLECTION,
    DetectionFields,
    PostingFields,
    SearchTermFields,
)
from src.common.types import AnalysisOutcome, Detection, Posting, SearchTerm

from .base import (
    BatchInsertResult,
    DetectionRepositoryInterface,
    PostingRepositoryInterface,
    SearchTermRepositoryInterface,
    UpsertOutcome,
    WriteResult,
)

logger = logging.getLogger(__name__)


def _without_id(document: Dict[str, Any]) -> Dict[str, Any]:
    """Drop _id; the upsert filter already supplies it."""
    return {k: v for k, v in document.items() if k != "_id"}


class AtlasCollection:
    """
    Shared connection handling for the Atlas repositories.

    Connection Management:
    - One class-level MongoClient for all repositories (connection pooling)
    - Client is created lazily on first collection access
    - PyMongo handles the pool and its locking internally
    """

    _client: Optional[MongoClient] = None

    def __init__(self, mongodb_uri: str, database: str, collection: str):
        """
        Args:
            mongodb_uri: MongoDB connection string
            database: Database name
            collection: Collection name
        """
        self._mongodb_uri = mongodb_uri
        self._database_name = database
        self._collection_name = collection

    def _get_collection(self) -> Collection:
        if AtlasCollection._client is None:
            AtlasCollection._client = MongoClient(self._mongodb_uri)
            logger.info(f"MongoDB client connected (database: {self._database_name})")
        return AtlasCollection._client[self._database_name][self._collection_name]

    @classmethod
    def reset_connection(cls) -> None:
        """
        Reset the shared connection pool.

        Used for testing or connection recovery.
        """
        if AtlasCollection._client is not None:
            AtlasCollection._client.close()
        AtlasCollection._client = None
        logger.info("MongoDB connection reset")


class AtlasPostingRepository(AtlasCollection, PostingRepositoryInterface):
    """Postings collection on MongoDB."""

    def __init__(self, mongodb_uri: str, database: str, collection: str = POSTINGS_COLLECTION):
        super().__init__(mongodb_uri, database, collection)

    def insert_if_absent(self, postings: List[Posting]) -> BatchInsertResult:
        """
        Insert-or-ignore via $setOnInsert upserts in one unordered bulk write.

        Unordered means one rejected row does not stop the rest of the batch;
        rejected rows are reported in the result instead of raising.
        """
        if not postings:
            return BatchInsertResult()

        operations = [
            UpdateOne(
                {PostingFields.ID: posting.id},
                {"$setOnInsert": _without_id(posting.to_document())},
                upsert=True,
            )
            for posting in postings
        ]

        collection = self._get_collection()
        try:
            result = collection.bulk_write(operations, ordered=False)
        except BulkWriteError as e:
            details = e.details or {}
            write_errors = details.get("writeErrors", [])
            # Racing inserts of the same _id surface as 11000; they are duplicates
            dup_errors = [w for w in write_errors if w.get("code") == 11000]
            other_errors = [w for w in write_errors if w.get("code") != 11000]
            return BatchInsertResult(
                inserted=details.get("nUpserted", 0),
                duplicates=details.get("nMatched", 0) + len(dup_errors),
                failed=len(other_errors),
                errors=[w.get("errmsg", "unknown write error") for w in other_errors],
            )

        return BatchInsertResult(
            inserted=result.upserted_count,
            duplicates=result.matched_count,
        )

    def fetch_unprocessed(self, limit: int) -> List[Posting]:
        collection = self._get_collection()
        cursor = (
            collection.find({PostingFields.PROCESSED: False})
            .sort([(PostingFields.SCRAPED_AT, ASCENDING), (PostingFields.ID, ASCENDING)])
            .limit(limit)
        )
        return [Posting.from_document(doc) for doc in cursor]

    def mark_processed(
        self,
        posting_id: str,
        outcome: AnalysisOutcome,
        analyzed_at: Optional[datetime] = None,
    ) -> bool:
        collection = self._get_collection()
        result = collection.update_one(
            {PostingFields.ID: posting_id, PostingFields.PROCESSED: False},
            {
                "$set": {
                    PostingFields.PROCESSED: True,
                    PostingFields.ANALYZED_AT: analyzed_at or datetime.utcnow(),
                    PostingFields.ANALYSIS_OUTCOME: outcome.value,
                }
            },
        )
        return result.modified_count > 0

    def count_total(self) -> int:
        return self._get_collection().count_documents({})

    def count_unprocessed(self) -> int:
        return self._get_collection().count_documents({PostingFields.PROCESSED: False})

    def ensure_indexes(self) -> None:
        self._get_collection().create_index(
            [(PostingFields.PROCESSED, ASCENDING), (PostingFields.SCRAPED_AT, ASCENDING)],
            name="processed_scraped_at",
        )


class AtlasDetectionRepository(AtlasCollection, DetectionRepositoryInterface):
    """identified_companies collection on MongoDB."""

    def __init__(self, mongodb_uri: str, database: str, collection: str = DETECTIONS_COLLECTION):
        super().__init__(mongodb_uri, database, collection)

    def upsert_detection(self, detection: Detection) -> UpsertOutcome:
        """
        Keep-highest-confidence upsert keyed on (company_key, tool).

        company_key is the normalized company name, so "Acme Inc" and
        "ACME, Inc." share one row; the first spelling stays as company.

        1. $setOnInsert with upsert creates the row if it is new.
        2. Otherwise a conditional update replaces the evidence only when the
           stored confidence_rank is lower.
        3. times_seen and last_seen_at are bumped on every reinforcement.

        A DuplicateKeyError means another process inserted the same pair
        between our filter match and insert; one retry lands in step 2.
        """
        try:
            return self._upsert_once(detection)
        except DuplicateKeyError:
            logger.debug(
                f"Concurrent insert for ({detection.company}, {detection.tool.value}), retrying"
            )
            return self._upsert_once(detection)

    def _upsert_once(self, detection: Detection) -> UpsertOutcome:
        collection = self._get_collection()
        key = {
            DetectionFields.COMPANY_KEY: detection.company_key,
            DetectionFields.TOOL: detection.tool.value,
        }
        now = detection.last_seen_at or datetime.utcnow()

        result = collection.update_one(
            key, {"$setOnInsert": detection.to_document()}, upsert=True
        )
        if result.upserted_id is not None:
            return UpsertOutcome.INSERTED

        upgrade = collection.update_one(
            {**key, DetectionFields.CONFIDENCE_RANK: {"$lt": detection.confidence_rank}},
            {
                "$set": {
                    DetectionFields.SIGNAL_TYPE: detection.signal_type.value,
                    DetectionFields.CONTEXT: detection.context,
                    DetectionFields.CONFIDENCE: detection.confidence.value,
                    DetectionFields.CONFIDENCE_RANK: detection.confidence_rank,
                    DetectionFields.JOB_TITLE: detection.job_title,
                    DetectionFields.JOB_URL: detection.job_url,
                    DetectionFields.POSTING_ID: detection.posting_id,
                    DetectionFields.PLATFORM: detection.platform,
                }
            },
        )
        collection.update_one(
            key,
            {
                "$inc": {DetectionFields.TIMES_SEEN: 1},
                "$set": {DetectionFields.LAST_SEEN_AT: now},
            },
        )
        if upgrade.modified_count > 0:
            return UpsertOutcome.UPGRADED
        return UpsertOutcome.REINFORCED

    def list_all(self) -> List[Detection]:
        cursor = self._get_collection().find({}).sort(
            [(DetectionFields.IDENTIFIED_AT, ASCENDING), (DetectionFields.ID, ASCENDING)]
        )
        return [Detection.from_document(doc) for doc in cursor]

    def delete_by_ids(self, ids: Iterable) -> int:
        id_list = list(ids)
        if not id_list:
            return 0
        result = self._get_collection().delete_many({DetectionFields.ID: {"$in": id_list}})
        return result.deleted_count

    def company_names(self) -> List[str]:
        return [name for name in self._get_collection().distinct(DetectionFields.COMPANY) if name]

    def count_total(self) -> int:
        return self._get_collection().count_documents({})

    def count_by_tool(self) -> Dict[str, int]:
        pipeline = [{"$group": {"_id": f"${DetectionFields.TOOL}", "count": {"$sum": 1}}}]
        return {
            row["_id"]: row["count"]
            for row in self._get_collection().aggregate(pipeline)
        }

    def backfill_company_keys(self) -> int:
        """Set company_key on rows written before the key existed."""
        collection = self._get_collection()
        operations = [
            UpdateOne(
                {DetectionFields.ID: doc[DetectionFields.ID]},
                {"$set": {DetectionFields.COMPANY_KEY: normalize_company_name(doc.get(DetectionFields.COMPANY))}},
            )
            for doc in collection.find(
                {DetectionFields.COMPANY_KEY: {"$exists": False}},
                {DetectionFields.COMPANY: 1},
            )
        ]
        if not operations:
            return 0
        collection.bulk_write(operations, ordered=False)
        logger.info(f"Backfilled company_key on {len(operations)} registry rows")
        return len(operations)

    def ensure_indexes(self) -> None:
        """
        Unique (company_key, tool) index.

        Raises:
            OperationFailure: If existing rows already share a key; merge
                them with the consolidator first.
        """
        self.backfill_company_keys()
        self._get_collection().create_index(
            [(DetectionFields.COMPANY_KEY, ASCENDING), (DetectionFields.TOOL, ASCENDING)],
            unique=True,
            name="company_key_tool_unique",
        )


class AtlasSearchTermRepository(AtlasCollection, SearchTermRepositoryInterface):
    """search_terms collection on MongoDB."""

    def __init__(self, mongodb_uri: str, database: str, collection: str = SEARCH_TERMS_COLLECTION):
        super().__init__(mongodb_uri, database, collection)

    def list_terms(self, active_only: bool = True) -> List[SearchTerm]:
        query: Dict[str, Any] = {SearchTermFields.ACTIVE: True} if active_only else {}
        cursor = self._get_collection().find(query).sort(SearchTermFields.TERM, ASCENDING)
        return [SearchTerm.from_document(doc) for doc in cursor]

    def record_scrape(
        self,
        term: str,
        scraped_at: datetime,
        jobs_found: int,
        run_id: Optional[str] = None,
    ) -> WriteResult:
        result = self._get_collection().update_one(
            {SearchTermFields.TERM: term},
            {
                "$set": {
                    SearchTermFields.LAST_SCRAPED_AT: scraped_at,
                    SearchTermFields.JOBS_FOUND_COUNT: jobs_found,
                    SearchTermFields.LAST_RUN_ID: run_id,
                    SearchTermFields.LAST_ERROR: None,
                }
            },
        )
        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
        )

    def record_failure(
        self,
        term: str,
        message: str,
        run_id: Optional[str] = None,
    ) -> WriteResult:
        result = self._get_collection().update_one(
            {SearchTermFields.TERM: term},
            {
                "$set": {
                    SearchTermFields.LAST_ERROR: message,
                    SearchTermFields.LAST_RUN_ID: run_id,
                }
            },
        )
        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
        )

    def add_terms(self, terms: Iterable[str]) -> int:
        cleaned = sorted({t.strip() for t in terms if t and t.strip()})
        if not cleaned:
            return 0

        operations = [
            UpdateOne(
                {SearchTermFields.TERM: term},
                {"$setOnInsert": _without_id(SearchTerm(term=term).to_document())},
                upsert=True,
            )
            for term in cleaned
        ]
        result = self._get_collection().bulk_write(operations, ordered=False)
        return result.upserted_count
