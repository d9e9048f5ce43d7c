"""
Apify LinkedIn Job Source

Runs the `bebity~linkedin-jobs-scraper` actor synchronously and reads the
resulting dataset in one call.

API: https://docs.apify.com/api/v2#/reference/actors/run-actor-synchronously-and-get-dataset-items
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from src.common.config import Config
from src.common.error_handling import CollaboratorError

from . import JobSource, ScrapedJob

logger = logging.getLogger(__name__)


class ApifyLinkedInSource(JobSource):
    """LinkedIn jobs scraped through an Apify actor."""

    API_BASE = "https://api.apify.com/v2"

    def __init__(
        self,
        token: Optional[str] = None,
        actor_id: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            token: Apify API token (defaults to Config.APIFY_TOKEN)
            actor_id: Actor to run (defaults to Config.APIFY_ACTOR_ID)
            timeout: HTTP timeout in seconds; actor runs take minutes
            session: Optional requests session (injected in tests)
        """
        self.token = token if token is not None else Config.APIFY_TOKEN
        self.actor_id = actor_id or Config.APIFY_ACTOR_ID
        self.timeout = timeout or Config.APIFY_TIMEOUT_SECONDS
        self._session = session or requests.Session()

    def get_platform_name(self) -> str:
        return "linkedin"

    def _run_url(self) -> str:
        return f"{self.API_BASE}/acts/{self.actor_id}/run-sync-get-dataset-items"

    def fetch_jobs(self, search_term: str, max_items: int) -> List[ScrapedJob]:
        """
        Run the actor for one search term.

        Args:
            search_term: Job title query
            max_items: Maximum postings ("rows" in actor input)

        Returns:
            List of ScrapedJob objects

        Raises:
            CollaboratorError: On HTTP errors, timeouts or a non-list payload
        """
        payload = {
            "title": search_term,
            "rows": max_items,
            "proxy": {"useApifyProxy": True, "apifyProxyGroups": []},
        }

        logger.info(f"Scraping LinkedIn via Apify: term='{search_term}', max={max_items}")

        try:
            response = self._session.post(
                self._run_url(),
                json=payload,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise CollaboratorError("apify", f"request timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise CollaboratorError("apify", f"request failed: {e}") from e
        except ValueError as e:
            raise CollaboratorError("apify", f"invalid JSON in response: {e}") from e

        if not isinstance(data, list):
            raise CollaboratorError(
                "apify", f"expected a list of items, got {type(data).__name__}"
            )

        jobs = [self._convert(item) for item in data[:max_items] if isinstance(item, dict)]
        logger.info(f"Fetched {len(jobs)} jobs from Apify for '{search_term}'")
        return jobs

    @staticmethod
    def _convert(item: Dict[str, Any]) -> ScrapedJob:
        """Map one actor dataset item to a ScrapedJob."""
        raw_id = item.get("id")
        return ScrapedJob(
            title=str(item.get("title") or "").strip(),
            company=str(item.get("companyName") or "").strip(),
            location=str(item.get("location") or "").strip(),
            description=str(item.get("description") or ""),
            url=str(item.get("jobUrl") or "").strip(),
            source_id=str(raw_id) if raw_id not in (None, "") else None,
        )
