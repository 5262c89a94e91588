"""
Utility script to generate and write the OpenAPI schema for the task API.

This script builds the FastAPI application and serializes its OpenAPI schema to
interfaces/openapi.json (or a path given on the command line) so that API
clients and documentation tools can consume a stable contract without running
the server.

Usage:
    python -m tasks_api.generate_openapi [output-path]

Notes:
- The script ensures the 'health' and 'tasks' tags are present in the OpenAPI tags metadata.
- Default output path is relative to the current working directory: interfaces/openapi.json
"""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .main import create_app, openapi_tags
from .repositories import InMemoryRepository
from .settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = Path("interfaces") / "openapi.json"


def _ensure_tags(schema: Dict[str, Any]) -> None:
    """
    Ensure the OpenAPI schema contains the expected tags metadata. Existing tag
    definitions are kept; missing ones are appended.
    """
    existing_tags: List[Dict[str, Any]] = schema.get("tags", []) or []
    existing_names = {t.get("name") for t in existing_tags if isinstance(t, dict)}
    for tag in openapi_tags:
        if tag.get("name") not in existing_names:
            existing_tags.append(tag)
    if existing_tags:
        schema["tags"] = existing_tags


def build_schema() -> Dict[str, Any]:
    """Return the OpenAPI schema of a freshly built application."""
    # The schema does not depend on the store, so never touch a real database here.
    app = create_app(get_settings(), repository=InMemoryRepository())
    schema = app.openapi()
    _ensure_tags(schema)
    return schema


# PUBLIC_INTERFACE
def generate_openapi(out_path: Optional[Union[str, Path]] = None) -> Path:
    """Generate the OpenAPI schema file and return the written file path."""
    path = Path(out_path) if out_path else DEFAULT_OUTPUT
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(build_schema(), f, indent=2, ensure_ascii=False)
    logger.info("Wrote OpenAPI schema to %s", path)
    return path


def main(argv: Optional[List[str]] = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    path = generate_openapi(args[0] if args else None)
    print(f"Wrote OpenAPI schema to: {path}")


if __name__ == "__main__":
    main()
