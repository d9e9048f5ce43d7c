"""
Persisted Schema

Collection and field names shared by every reader and writer. Repositories,
services and scripts import names from here instead of spelling strings.
"""

# ===== Collections =====
POSTINGS_COLLECTION = "postings"
DETECTIONS_COLLECTION = "identified_companies"
SEARCH_TERMS_COLLECTION = "search_terms"


class PostingFields:
    """Field names in the postings collection."""

    ID = "_id"
    PLATFORM = "platform"
    COMPANY = "company"
    TITLE = "title"
    LOCATION = "location"
    DESCRIPTION = "description"
    URL = "url"
    SEARCH_TERM = "search_term"
    SCRAPE_RUN_ID = "scrape_run_id"
    SCRAPED_AT = "scraped_at"
    PROCESSED = "processed"
    ANALYZED_AT = "analyzed_at"
    ANALYSIS_OUTCOME = "analysis_outcome"


class DetectionFields:
    """Field names in the identified_companies collection."""

    ID = "_id"
    COMPANY = "company"
    COMPANY_KEY = "company_key"  # normalize_company_name(company)
    TOOL = "tool"
    SIGNAL_TYPE = "signal_type"
    CONTEXT = "context"
    CONFIDENCE = "confidence"
    CONFIDENCE_RANK = "confidence_rank"
    JOB_TITLE = "job_title"
    JOB_URL = "job_url"
    POSTING_ID = "posting_id"
    PLATFORM = "platform"
    IDENTIFIED_AT = "identified_at"
    TIMES_SEEN = "times_seen"
    LAST_SEEN_AT = "last_seen_at"


class SearchTermFields:
    """Field names in the search_terms collection."""

    TERM = "_id"
    LAST_SCRAPED_AT = "last_scraped_at"
    JOBS_FOUND_COUNT = "jobs_found_count"
    ACTIVE = "active"
    LAST_ERROR = "last_error"
    LAST_RUN_ID = "last_run_id"
