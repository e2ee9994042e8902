#!/usr/bin/env python3
"""
Export the OpenAPI specification of the Register Path API.

The JSON file feeds the door-scanner and checkout clients' code generators.
"""

import json
import os
import sys

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from register_path.main import app


def export_openapi_spec(output_file: str = "openapi.json") -> bool:
    """Write the OpenAPI schema to ``output_file``."""
    try:
        openapi_schema = app.openapi()
        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(openapi_schema, f, indent=2, ensure_ascii=False)
    except (OSError, TypeError, ValueError) as e:
        print(f"Failed to export OpenAPI specification: {e}")
        return False

    info = openapi_schema.get("info", {})
    paths = openapi_schema.get("paths", {})
    print(f"OpenAPI specification exported to: {output_file}")
    print(f"{info.get('title', 'unknown')} {info.get('version', 'unknown')}, "
          f"{sum(len(methods) for methods in paths.values())} endpoints")

    for path in sorted(paths):
        print(f"  {path}: {', '.join(method.upper() for method in paths[path])}")
    return True


def main():
    output_file = sys.argv[1] if len(sys.argv) > 1 else "openapi.json"
    if not export_openapi_spec(output_file):
        sys.exit(1)


if __name__ == "__main__":
    main()
