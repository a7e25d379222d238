"""
JSON file storage adapter for the survey export service.
Simple file-based storage for quick demos and testing.
Not production-ready (no proper locking, not suitable for concurrent access).
"""
import json
import uuid
from datetime import datetime
from typing import List, Dict, Any, Optional
from pathlib import Path

from core.errors import AuditSinkError, QueryError


class JsonAdapter:
    """
    JSON file-based storage adapter.
    Stores each table in its own JSON file under the data directory.
    Uses atomic file operations for basic consistency.
    """

    def __init__(self, data_dir: str = "data/json"):
        """
        Initialize the JSON adapter.

        Args:
            data_dir: Directory to store JSON files
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        # File paths
        self.profiles_file = self.data_dir / "profiles.json"
        self.surveys_file = self.data_dir / "surveys.json"
        self.assets_file = self.data_dir / "assets.json"
        self.security_logs_file = self.data_dir / "security_logs.json"

        # Initialize files if they don't exist
        for file in [self.profiles_file, self.surveys_file, self.assets_file, self.security_logs_file]:
            if not file.exists():
                self._write_file(file, [])

    def _read_file(self, filepath: Path) -> List[Dict[str, Any]]:
        """
        Read and parse a JSON file.

        A missing file is an empty table; an unreadable or corrupt one is a
        query failure (callers must be able to tell the two apart).
        """
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as e:
            raise QueryError(f"Failed to read {filepath.name}: {e}") from e
        if not isinstance(data, list):
            raise QueryError(f"{filepath.name} is not a JSON array")
        return data

    def _write_file(self, filepath: Path, data: List[Dict[str, Any]]) -> None:
        """Write data to a JSON file atomically."""
        # Write to temporary file first
        tmp_file = filepath.with_suffix(".tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)

        # Atomic rename
        tmp_file.replace(filepath)

    def ping(self) -> None:
        self._read_file(self.surveys_file)

    # ========== Reads ==========

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return next((p for p in self._read_file(self.profiles_file) if p.get("id") == user_id), None)

    def get_survey(self, survey_id: str) -> Optional[Dict[str, Any]]:
        return next((s for s in self._read_file(self.surveys_file) if s.get("id") == survey_id), None)

    def list_assets(self, survey_id: str) -> List[Dict[str, Any]]:
        """Assets of a survey in the order they were written."""
        return [a for a in self._read_file(self.assets_file) if a.get("survey_id") == survey_id]

    # ========== Audit sink ==========

    def log_event(
        self,
        action: str,
        metadata: Dict[str, Any],
        *,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            logs = self._read_file(self.security_logs_file)
            logs.append({
                "user_id": user_id,
                "action": action,
                "metadata": metadata or {},
                "created_at": datetime.utcnow().isoformat(),
            })
            self._write_file(self.security_logs_file, logs)
        except (QueryError, OSError, TypeError) as e:
            raise AuditSinkError(f"security log write failed: {e}") from e
        return {"success": True}

    def list_security_events(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        logs = self._read_file(self.security_logs_file)
        return [l for l in logs if not user_id or l.get("user_id") == user_id]

    # ========== Writes (seeding) ==========

    def upsert_profile(
        self,
        user_id: str,
        *,
        role: str = "client",
        company_name: Optional[str] = None,
        license_status: str = "active",
        email: Optional[str] = None,
    ) -> None:
        rows = self._read_file(self.profiles_file)
        row = next((p for p in rows if p.get("id") == user_id), None)
        if row is None:
            row = {"id": user_id, "created_at": datetime.utcnow().isoformat()}
            rows.append(row)
        row.update(role=role, company_name=company_name, license_status=license_status, email=email)
        self._write_file(self.profiles_file, rows)

    def create_survey(self, **fields: Any) -> str:
        survey_id = str(fields.pop("id", None) or uuid.uuid4())
        now = datetime.utcnow().isoformat()
        rows = self._read_file(self.surveys_file)
        rows.append({"id": survey_id, "status": "in_progress", **fields, "created_at": now, "updated_at": now})
        self._write_file(self.surveys_file, rows)
        return survey_id

    def create_asset(self, survey_id: str, **fields: Any) -> str:
        asset_id = str(fields.pop("id", None) or uuid.uuid4())
        now = datetime.utcnow().isoformat()
        rows = self._read_file(self.assets_file)
        rows.append({
            "id": asset_id,
            "survey_id": survey_id,
            "quantity": 1,
            "complexity_level": 1,
            **fields,
            "created_at": now,
            "updated_at": now,
        })
        self._write_file(self.assets_file, rows)
        return asset_id
