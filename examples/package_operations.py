#!/usr/bin/env python3
"""
Package Operations Example

This example demonstrates:
- Building tournament, event and player envelopes
- Signing envelopes and a package manifest
- Writing and re-opening a verified package archive
- Detecting tampering after the archive is written
"""

import tempfile
import zipfile
from datetime import datetime, timezone
from pathlib import Path

from ptd.entities import Event, Player, Tournament
from ptd.envelope import new_envelope
from ptd.errors import HashMismatchError
from ptd.ids import IDGenerator
from ptd.package import Package, open_package
from ptd.schema import SchemaValidator
from ptd.signing import Signer, verify


def build_envelopes(generator, signer):
    """Create a small, signed tournament data set."""
    tournament = new_envelope(
        "tournament",
        Tournament(
            name="Summer Open",
            status="published",
            start_date=datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc),
            end_date=datetime(2025, 7, 6, 18, 0, tzinfo=timezone.utc),
        ),
        source="example:local",
        generator=generator,
    )
    event = new_envelope(
        "event",
        Event(tournament_id=tournament.id, name="Men's Singles", event_type="singles"),
        source="example:local",
        generator=generator,
    )
    players = [
        new_envelope("player", Player(first_name=first, last_name=last), generator=generator)
        for first, last in (("Ma", "Long"), ("Timo", "Boll"), ("Hugo", "Calderano"))
    ]

    validator = SchemaValidator(strict=True)
    for envelope in [tournament, event, *players]:
        validator.validate_envelope(envelope)
        signer.sign(envelope)

    return tournament, event, players


def demonstrate_package_operations():
    """Demonstrate building, signing, opening and tamper detection."""
    print("PTD Package Operations Example")
    print("=" * 40)

    generator = IDGenerator()
    signer = Signer.generate("example-key", signed_by="Example Federation")
    tournament, event, players = build_envelopes(generator, signer)

    workdir = Path(tempfile.mkdtemp(prefix="ptd-example-"))
    archive_path = workdir / "summer-open.zip"

    with Package("Summer Open entries", creator="example") as package:
        package.add_entities("tournament", [tournament])
        package.add_entities("event", [event])
        package.add_entities("player", players)
        package.create_archive(archive_path, signer=signer)
    print(f"Wrote {archive_path}")

    opened = open_package(archive_path)
    opened.verify_signature(signer.public_key)
    for name, count in sorted(opened.manifest.entities.items()):
        print(f"  {name}: {count.count}")

    for envelope in opened.read_envelopes("player"):
        verify(envelope, signer.public_key)
    print("All player signatures verified")

    # Rewrite one member with different bytes
    with zipfile.ZipFile(archive_path) as source:
        members = [(info, source.read(info)) for info in source.infolist()]
    with zipfile.ZipFile(archive_path, "w") as target:
        for info, data in members:
            if info.filename == "player/players.ndjson":
                data = data.replace(b"Long", b"Lung")
            target.writestr(info, data)

    try:
        open_package(archive_path)
    except HashMismatchError as exc:
        print(f"Tampering detected in {exc.path}")


if __name__ == "__main__":
    demonstrate_package_operations()
