"""Export the PTD manifest and envelope JSON Schemas."""

from __future__ import annotations

import json
from pathlib import Path

from ptd.envelope import GenericEnvelope
from ptd.package import FORMAT_VERSION, Manifest


def main() -> None:
    """Write JSON Schemas for :class:`Manifest` and envelopes to the repository root."""

    root = Path(__file__).resolve().parent.parent
    schemas = {
        f"manifest_schema_v{FORMAT_VERSION}.json": Manifest.model_json_schema(by_alias=True),
        "envelope_schema_v1.json": GenericEnvelope.model_json_schema(by_alias=True),
    }
    for name, schema in schemas.items():
        (root / name).write_text(json.dumps(schema, indent=2), encoding="utf-8")


if __name__ == "__main__":
    main()
