"""
Collaborator interfaces for the survey export service.
Defines the contracts that storage backends must implement.
"""

from typing import Protocol, List, Dict, Any, Optional


class SurveyStore(Protocol):
    """
    Read access to the relational store.

    This allows swapping between SQLite, JSON files, a hosted Postgres, etc.
    without changing the router or export pipeline code.

    NOTE:
    - Rows are plain dicts matching the table columns.
    - Any backend failure that is not "row missing" raises core.errors.QueryError.
    """

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch the `profiles` row for a user.

        Returns:
            Dict with id, role, company_name, license_status, email; or None.
        """
        ...

    def get_survey(self, survey_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a `surveys` row by id.

        Returns:
            Dict with survey fields, or None if not found.
        """
        ...

    def list_assets(self, survey_id: str) -> List[Dict[str, Any]]:
        """
        All `assets` rows for a survey, in stored order.

        An empty list is a valid answer and is NOT an error.
        """
        ...


class BlobStore(Protocol):
    """
    Read-only access to binary objects (photos, reference diagrams).
    """

    async def download(self, bucket: str, path: str) -> bytes:
        """
        Raw object bytes.

        Raises:
            core.errors.BlobNotFoundError: no object at bucket/path
            core.errors.BlobStoreError: any other storage failure
        """
        ...


class AuditSink(Protocol):
    """
    Best-effort destination for security events.
    """

    def log_event(
        self,
        action: str,
        metadata: Dict[str, Any],
        *,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record one event.

        Returns:
            {"success": bool, "error"?: str}

        Raises:
            core.errors.AuditSinkError when the write fails (callers swallow it)
        """
        ...
