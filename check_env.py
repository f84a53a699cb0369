#!/usr/bin/env python3
"""Report which routeengine environment keys are configured, and write a template .env if none exists."""

from pathlib import Path
import os
import sys

SECRET_KEYS = {"ROUTEENGINE_SUPABASE_KEY", "ROUTEENGINE_MAPS_API_KEY"}

TEMPLATE = """# Supabase trip store (required for the HTTP API)
ROUTEENGINE_SUPABASE_URL=https://your-project-id.supabase.co
ROUTEENGINE_SUPABASE_KEY=your-service-role-key-here

# Google Distance Matrix (optional; haversine estimates are used when empty)
ROUTEENGINE_MAPS_API_KEY=

# API Configuration
ROUTEENGINE_API_PREFIX=/api
ROUTEENGINE_LOG_LEVEL=INFO
# ROUTEENGINE_FRONTEND_ALLOWED_ORIGINS accepts a JSON array or a comma-separated list

# Engine defaults
ROUTEENGINE_DEFAULT_VEHICLE_CAPACITY=8
ROUTEENGINE_BATCH_MAX_WORKERS=4
"""


def _mask(value: str) -> str:
    if len(value) > 20:
        return value[:12] + "..." + value[-6:]
    return "***"


def main():
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    print("=" * 60)
    print("routeengine environment checker")
    print("=" * 60)

    if not env_file.exists():
        env_file.write_text(TEMPLATE, encoding="utf-8")
        print(f"Created template .env at {env_file}; fill in your credentials and rerun.")
        return

    print(f"Found .env file at: {env_file}")
    for line in env_file.read_text(encoding="utf-8").splitlines():
        name, _, value = line.partition("=")
        if name.strip() in SECRET_KEYS and value.strip():
            print(f"{name}={_mask(value.strip())}")
        else:
            print(line)
    print()

    sys.path.insert(0, str(project_root / "src"))
    try:
        from routeengine.config import settings
    except Exception as e:
        print(f"Error loading config: {e}")
        return

    checks = {
        "ROUTEENGINE_SUPABASE_URL": settings.supabase_url,
        "ROUTEENGINE_SUPABASE_KEY": settings.supabase_key,
        "ROUTEENGINE_MAPS_API_KEY": settings.maps_api_key,
    }
    for name, value in checks.items():
        source = "environment" if os.getenv(name) else ".env/defaults"
        state = "configured" if value else "missing"
        print(f"{name}: {state} ({source})")

    print()
    if settings.supabase_url and settings.supabase_key:
        print("Trip store is configured.")
    else:
        print("Trip store is NOT configured; API endpoints will return 503.")
    if not settings.maps_api_key:
        print("Maps API key not set; distances will be haversine estimates.")


if __name__ == "__main__":
    main()
