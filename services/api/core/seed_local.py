"""
Seed script for local testing of the survey export service.
Creates a demo profile, a survey with a few assets, a reference diagram in
the local blob store, and prints a session token for calling the API.

Usage:
    python -m core.seed_local
"""
import sys
import os
import io

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from PIL import Image, ImageDraw

from settings import get_settings
from adapters.blob import LocalBlobStore
from adapters.sqlite import SqliteAdapter
from adapters.json import JsonAdapter
from core.auth import create_session_token
from core.watermark import diagram_paths

DEMO_USER = "demo-user-001"
DEMO_EMAIL = "surveyor@example.com"

DEMO_ASSETS = [
    {"asset_tag": "CV-001", "asset_type": "check_valve", "location_area": "Roof", "quantity": 2},
    {"asset_tag": "GV-014", "asset_type": "gate_valve", "location_area": "Plant Room", "quantity": 1},
    # No diagram is seeded for this type: its page shows the placeholder
    {"asset_tag": "PRV-003", "asset_type": "Pressure Reducing Valve", "location_area": None, "quantity": 1,
     "obstruction_present": True, "obstruction_type": "Cable tray", "obstruction_offset_mm": 150},
]


def _sample_diagram(label: str, size=(1200, 800)) -> bytes:
    """Simple line drawing so the watermark has something to sit on."""
    img = Image.new("RGB", size, "white")
    d = ImageDraw.Draw(img)
    w, h = size
    d.rectangle([40, 40, w - 40, h - 40], outline="black", width=4)
    d.line([(w * 0.2, h / 2), (w * 0.8, h / 2)], fill="black", width=10)
    d.ellipse([w / 2 - 80, h / 2 - 80, w / 2 + 80, h / 2 + 80], outline="black", width=6)
    d.text((60, 60), label, fill="black")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def seed():
    """Create sample data for testing."""
    print("🌱 Seeding survey export service...")

    settings = get_settings()
    print(f"📦 Using {settings.storage_backend} backend")

    if settings.storage_backend == "sqlite":
        adapter = SqliteAdapter.from_url(settings.db_url)
    elif settings.storage_backend == "json":
        adapter = JsonAdapter(settings.json_data_dir)
    else:
        print(f"❌ Seeding not implemented for {settings.storage_backend}")
        return

    adapter.upsert_profile(
        DEMO_USER,
        role="client",
        company_name="Acme Mechanical",
        license_status="active",
        email=DEMO_EMAIL,
    )
    print(f"✅ Profile: {DEMO_USER}")

    survey_id = adapter.create_survey(
        client_name="Acme Mechanical",
        site_name="Unit 3 Boiler House",
        site_address="3 Industrial Way",
        survey_date="2026-01-15",
        surveyor_name="J. Smith",
        project_reference="PRJ-2026-001",
    )
    for a in DEMO_ASSETS:
        adapter.create_asset(survey_id, **a)
    print(f"✅ Survey {survey_id} with {len(DEMO_ASSETS)} assets")

    if settings.blob_backend == "local":
        blobs = LocalBlobStore(settings.blob_root)
        for asset_type in ("check_valve", "gate_valve"):
            path = diagram_paths(asset_type, prefix=settings.diagram_prefix)[0]
            blobs.upload(settings.diagram_bucket, path, _sample_diagram(asset_type))
            print(f"🖼  Diagram: {settings.diagram_bucket}/{path}")
    else:
        print("ℹ️  Remote blob backend: upload diagrams yourself")

    token, _ = create_session_token(
        user_id=DEMO_USER,
        email=DEMO_EMAIL,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl=settings.jwt_ttl_s,
    )

    print("\n🎉 Seeding complete!")
    print("\nTry:")
    print(f"  curl -H 'Authorization: Bearer {token}' -o survey.pdf \\")
    print(f"       http://localhost:8000/surveys/{survey_id}/export")


if __name__ == "__main__":
    seed()
