"""
Write the OpenAPI document of the rental order API.

Usage:
    python -m rental_api.api.generate_openapi [output_path]
"""
import json
import sys
from pathlib import Path

from rental_api.api.main import app

DEFAULT_OUTPUT = Path("interfaces") / "openapi.json"


def build_schema() -> dict:
    """OpenAPI schema plus the cron shared-secret scheme, which FastAPI cannot infer."""
    schema = app.openapi()
    schema.setdefault("components", {}).setdefault("securitySchemes", {})["CronSecret"] = {
        "type": "http",
        "scheme": "bearer",
        "description": "Shared CRON_SECRET for /api/v1/cron/* endpoints.",
    }
    return schema


def main(output: Path = DEFAULT_OUTPUT) -> Path:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(build_schema(), indent=2))
    return output


if __name__ == "__main__":
    main(Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_OUTPUT)
