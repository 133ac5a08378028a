"""Write the Sleep Debt Tracker OpenAPI document to a JSON file.

Usage:
    python scripts/export_openapi.py                # ./openapi.json
    python scripts/export_openapi.py -o docs/api.json
"""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from main import app  # noqa: E402

DEFAULT_PATH = Path(__file__).resolve().parent.parent / "openapi.json"


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("-o", "--output", type=Path, default=DEFAULT_PATH)
    args = parser.parse_args()

    document = app.openapi()
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(json.dumps(document, indent=2) + "\n")
    print(f"Wrote {args.output} ({len(document['paths'])} paths)")


if __name__ == "__main__":
    main()
