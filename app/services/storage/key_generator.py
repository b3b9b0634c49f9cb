from pathlib import Path
from uuid import uuid4
import re


class KeyGenerator:
    """Builds human traceable blob keys.

    The random suffix makes keys unique; the organization and document name
    only help an operator find a blob by eye.
    """

    @staticmethod
    def _slug(value: str, fallback: str) -> str:
        s = re.sub(r"[^a-zA-Z0-9_.-]+", "_", (value or "").strip()).strip("._")
        return s[:60] or fallback

    @staticmethod
    def _extension(filename_or_ext: str) -> str:
        ext = filename_or_ext if filename_or_ext.startswith(".") else Path(filename_or_ext).suffix
        return ext.lower()

    @staticmethod
    def generate_object_key(
        proposal_id: str, organization_name: str, document_type: str, filename_or_ext: str
    ) -> str:
        org = KeyGenerator._slug(organization_name, "organization")
        ext = KeyGenerator._extension(filename_or_ext)
        return f"proposals/{proposal_id}/{document_type}/{org}_{document_type}_{uuid4().hex}{ext}"

    @staticmethod
    def generate_compliance_key(
        proposal_id: str, organization_name: str, document_name: str, filename_or_ext: str
    ) -> str:
        org = KeyGenerator._slug(organization_name, "organization")
        name = KeyGenerator._slug(document_name, "document").lower()
        ext = KeyGenerator._extension(filename_or_ext)
        return f"proposals/{proposal_id}/compliance/{org}_{name}_{uuid4().hex}{ext}"
