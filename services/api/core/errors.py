"""
Error taxonomy for the survey export pipeline.

Only Unauthorized, LicenseInactive, NotFoundError and QueryError end an export
with a non-200 response. Everything raised at per-asset granularity is turned
into a placeholder page by the report assembler.
"""
from __future__ import annotations


class ExportError(Exception):
    """Base class for all pipeline errors."""


# ---------- terminal (HTTP-visible) -----------------------------------------

class Unauthorized(ExportError):
    """No valid session on the request."""


class LicenseInactive(ExportError):
    """Caller is authenticated but their license is revoked or pending."""


class NotFoundError(ExportError):
    """A requested row (survey, profile) does not exist."""


class QueryError(ExportError):
    """Upstream data-store failure that is not a 'not found'."""


# ---------- per-asset (recovered locally) ------------------------------------

class DiagramUnavailableError(ExportError):
    """A diagram could not be fetched, decoded or watermarked."""

    def __init__(self, asset_type: str, reason: str):
        super().__init__(f"{asset_type}: {reason}")
        self.asset_type = asset_type
        self.reason = reason


class UnsupportedImageError(ExportError):
    """Input bytes cannot be decoded as a raster image."""


class EncodingError(ExportError):
    """The composited image could not be re-encoded."""


# ---------- collaborators ---------------------------------------------------

class BlobStoreError(ExportError):
    """Blob storage could not be reached or returned an error."""


class BlobNotFoundError(BlobStoreError):
    """No object exists at the requested bucket/path."""

    def __init__(self, bucket: str, path: str):
        super().__init__(f"{bucket}/{path} not found")
        self.bucket = bucket
        self.path = path


class AuditSinkError(ExportError):
    """An audit/security event could not be written. Always swallowed."""
