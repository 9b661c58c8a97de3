"""Tests for building and opening PTD package archives."""

from __future__ import annotations

import gc
import json
import logging
import struct
import zipfile
from pathlib import Path

import pytest

from ptd.config_loader import PackageSettings, PackagingConfig
from ptd.entities import Player, Tournament
from ptd.envelope import Envelope, new_envelope
from ptd.errors import (
    HashMismatchError,
    InvalidPackageError,
    ManifestInvalidError,
    ManifestMissingError,
    MissingFileError,
    UnexpectedFileError,
)
from ptd.ids import IDGenerator, is_valid_raw
from ptd.package import (
    MANIFEST_NAME,
    Manifest,
    Package,
    detect_content_type,
    entity_file_path,
    hash_bytes,
    open_package,
)
from ptd.settings import PTDSettings
from ptd.signing import Signer, verify

KNOWN_BYTES = b"tournament-results: known bytes for tamper checks\n"


def _players(generator: IDGenerator, count: int) -> list[Envelope[Player]]:
    return [
        new_envelope("player", Player(first_name=f"P{index}", last_name="Test"), generator=generator)
        for index in range(count)
    ]


def _rewrite_member(archive: Path, name: str, data: bytes) -> None:
    """Copy ``archive`` replacing member ``name`` with ``data``."""

    with zipfile.ZipFile(archive) as source:
        members = [(info, source.read(info)) for info in source.infolist()]
    with zipfile.ZipFile(archive, "w") as target:
        for info, content in members:
            target.writestr(info, data if info.filename == name else content)


def test_build_and_open_round_trip(
    tmp_path: Path,
    generator: IDGenerator,
    tournament_envelope: Envelope[Tournament],
) -> None:
    with Package("Summer Open results", creator="Test Federation", generator=generator) as package:
        assert package.add_entities("tournament", [tournament_envelope]) == 1
        assert package.add_entities("player", _players(generator, 3)) == 3
        archive = package.create_archive(tmp_path / "out.zip")

    opened = open_package(archive)
    manifest = opened.manifest

    assert manifest.version == "1.0.0"
    assert manifest.creator == "Test Federation"
    assert manifest.description == "Summer Open results"
    assert manifest.entities["player"].count == 3
    assert manifest.entities["tournament"].count == 1
    assert set(manifest.files) == {
        "player/players.ndjson",
        "tournament/tournaments.ndjson",
    }
    entry = manifest.files["player/players.ndjson"]
    assert entry.type == "application/x-ndjson"
    assert len(entry.hash) == 64

    with zipfile.ZipFile(archive) as raw:
        assert raw.namelist()[0] == MANIFEST_NAME


def test_entities_are_canonical_ndjson(
    tmp_path: Path,
    signer: Signer,
    tournament_envelope: Envelope[Tournament],
) -> None:
    signer.sign(tournament_envelope)
    with Package() as package:
        package.add_entities("tournament", [tournament_envelope])
        archive = package.create_archive(tmp_path / "out.zip")

    with zipfile.ZipFile(archive) as raw:
        lines = raw.read(entity_file_path("tournament")).decode("utf-8").splitlines()
    assert len(lines) == 1
    assert lines[0] == json.dumps(json.loads(lines[0]), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    envelopes = open_package(archive).read_envelopes("tournament")
    assert envelopes[0].spec["name"] == "Test"
    assert envelopes[0].canonical_bytes() == tournament_envelope.canonical_bytes()
    verify(envelopes[0], signer.public_key)


def test_read_entities_for_absent_type_yields_nothing(
    tmp_path: Path, tournament_envelope: Envelope[Tournament]
) -> None:
    with Package() as package:
        package.add_entities("tournament", [tournament_envelope])
        archive = package.create_archive(tmp_path / "out.zip")

    assert list(open_package(archive).read_entities("match")) == []


def test_tampered_file_is_detected(tmp_path: Path) -> None:
    with Package() as package:
        package.add_file("data/results.txt", KNOWN_BYTES)
        archive = package.create_archive(tmp_path / "out.zip")

    tampered = bytearray(KNOWN_BYTES)
    tampered[0] ^= 0xFF
    _rewrite_member(archive, "data/results.txt", bytes(tampered))

    with pytest.raises(HashMismatchError) as excinfo:
        open_package(archive)
    assert excinfo.value.path == "data/results.txt"
    assert excinfo.value.expected == hash_bytes(KNOWN_BYTES)
    assert excinfo.value.actual == hash_bytes(bytes(tampered))


def test_byte_flipped_in_place_is_detected(tmp_path: Path) -> None:
    with Package() as package:
        package.add_file("data/results.txt", KNOWN_BYTES)
        archive = package.create_archive(tmp_path / "out.zip", compression=zipfile.ZIP_STORED)

    blob = bytearray(archive.read_bytes())
    offset = blob.find(KNOWN_BYTES)
    assert offset >= 0
    blob[offset] ^= 0x01
    archive.write_bytes(bytes(blob))

    with pytest.raises(HashMismatchError):
        open_package(archive)


def test_missing_manifest(tmp_path: Path) -> None:
    archive = tmp_path / "no-manifest.zip"
    with zipfile.ZipFile(archive, "w") as raw:
        raw.writestr("player/players.ndjson", "{}\n")

    with pytest.raises(ManifestMissingError):
        open_package(archive)


def test_invalid_manifest(tmp_path: Path) -> None:
    archive = tmp_path / "bad-manifest.zip"
    with zipfile.ZipFile(archive, "w") as raw:
        raw.writestr(MANIFEST_NAME, "{not json")

    with pytest.raises(ManifestInvalidError):
        open_package(archive)


def test_manifest_file_keys_must_match_paths() -> None:
    with pytest.raises(ValueError):
        Manifest.model_validate(
            {
                "files": {
                    "a.json": {
                        "path": "b.json",
                        "size": 1,
                        "hash": "0" * 64,
                        "modified": "2025-01-01T00:00:00Z",
                    }
                }
            }
        )


def test_unexpected_file(tmp_path: Path, tournament_envelope: Envelope[Tournament]) -> None:
    with Package() as package:
        package.add_entities("tournament", [tournament_envelope])
        archive = package.create_archive(tmp_path / "out.zip")

    with zipfile.ZipFile(archive, "a") as raw:
        raw.writestr("extra/payload.bin", b"\x00\x01")

    with pytest.raises(UnexpectedFileError) as excinfo:
        open_package(archive)
    assert excinfo.value.path == "extra/payload.bin"


def _archive_missing_listed_file(tmp_path: Path) -> Path:
    with Package() as package:
        package.add_file("a.json", b"{}")
        package.add_file("b.csv", b"x,y\n")
        archive = package.create_archive(tmp_path / "out.zip")

    with zipfile.ZipFile(archive) as source:
        kept = [(info, source.read(info)) for info in source.infolist() if info.filename != "b.csv"]
    with zipfile.ZipFile(archive, "w") as target:
        for info, content in kept:
            target.writestr(info, content)
    return archive


def test_missing_listed_file_allowed_by_default(tmp_path: Path) -> None:
    archive = _archive_missing_listed_file(tmp_path)
    assert "b.csv" in open_package(archive).manifest.files


def test_missing_listed_file_rejected_when_required(tmp_path: Path) -> None:
    archive = _archive_missing_listed_file(tmp_path)
    with pytest.raises(MissingFileError) as excinfo:
        open_package(archive, require_complete=True)
    assert excinfo.value.paths == ["b.csv"]


def test_require_complete_from_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    archive = _archive_missing_listed_file(tmp_path)
    monkeypatch.setenv("PTD_REQUIRE_COMPLETE", "true")
    with pytest.raises(MissingFileError):
        Package.open(archive)


def test_duplicate_members_rejected(tmp_path: Path) -> None:
    with Package() as package:
        package.add_file("a.json", b"{}")
        archive = package.create_archive(tmp_path / "out.zip")

    with pytest.warns(UserWarning):
        with zipfile.ZipFile(archive, "a") as raw:
            raw.writestr("a.json", b"{}")

    with pytest.raises(InvalidPackageError):
        open_package(archive)


def test_not_a_zip(tmp_path: Path) -> None:
    bogus = tmp_path / "bogus.zip"
    bogus.write_bytes(b"definitely not a zip")
    with pytest.raises(InvalidPackageError):
        open_package(bogus)


def test_parallel_hashing_matches_sequential(tmp_path: Path, generator: IDGenerator) -> None:
    contents = {f"files/{index:02d}.json": json.dumps({"n": index}).encode() for index in range(12)}
    players = _players(generator, 2)

    def build(workers: int, name: str) -> Manifest:
        with Package(hash_workers=workers) as package:
            for relative, data in contents.items():
                package.add_file(relative, data)
            package.add_entities("player", players)
            return open_package(package.create_archive(tmp_path / name)).manifest

    sequential = build(1, "seq.zip")
    parallel = build(4, "par.zip")

    assert set(sequential.files) == set(parallel.files)
    for relative, entry in sequential.files.items():
        assert parallel.files[relative].hash == entry.hash
        assert parallel.files[relative].size == entry.size


def test_defaults_come_from_settings() -> None:
    settings = PTDSettings(PTD_CREATOR="Club Exporter", PTD_HASH_WORKERS="3")
    with Package(settings=settings) as package:
        assert package.manifest.creator == "Club Exporter"
        assert package.hash_workers == 3


@pytest.mark.parametrize("relative", ["", "/abs.json", "../escape.json", MANIFEST_NAME, "a\\b.json"])
def test_add_file_rejects_unsafe_paths(relative: str) -> None:
    with Package() as package:
        with pytest.raises(ValueError):
            package.add_file(relative, b"x")


def test_add_entities_rejects_path_like_types() -> None:
    with Package() as package:
        with pytest.raises(ValueError):
            package.add_entities("../player", [])


def test_staging_is_created_on_first_add() -> None:
    package = Package()
    assert package._staging is None

    package.add_file("a.json", b"{}")
    staging = package._staging
    assert staging is not None and staging.exists()
    package.cleanup()
    assert not staging.exists()
    with pytest.raises(InvalidPackageError):
        package.add_file("b.json", b"{}")


def test_unreferenced_package_removes_staging() -> None:
    package = Package()
    package.add_file("a.json", b"{}")
    staging = package._staging
    assert staging is not None and staging.exists()

    del package
    gc.collect()

    assert not staging.exists()


def test_failed_add_entities_stages_nothing(tmp_path: Path) -> None:
    with Package() as package:
        with pytest.raises(TypeError):
            package.add_entities("player", [{"name": "ok"}, {"bad": {1, 2}}])
        archive = package.create_archive(tmp_path / "out.zip")

    manifest = open_package(archive, require_complete=True).manifest
    assert manifest.files == {}
    assert manifest.entities == {}


def test_failed_add_entities_keeps_earlier_file(tmp_path: Path) -> None:
    with Package() as package:
        package.add_entities("player", [{"name": "first"}])
        with pytest.raises(TypeError):
            package.add_entities("player", [{"name": "second"}, {"bad": {1, 2}}])
        archive = package.create_archive(tmp_path / "out.zip")

    opened = open_package(archive, require_complete=True)
    assert set(opened.manifest.files) == {"player/players.ndjson"}
    assert opened.manifest.entities["player"].count == 1
    assert list(opened.read_entities("player")) == [{"name": "first"}]


def test_package_id_is_recorded(tmp_path: Path, generator: IDGenerator) -> None:
    with Package(generator=generator) as package:
        package.add_file("a.json", b"{}")
        archive = package.create_archive(tmp_path / "out.zip")
        built_id = package.id

    assert built_id is not None and is_valid_raw(built_id)
    assert open_package(archive).id == built_id


def test_defaults_come_from_profile() -> None:
    config = PackagingConfig(
        package=PackageSettings(
            creator="Profile Creator", description="Profile description", hash_workers=5
        )
    )
    with Package(config=config) as package:
        assert package.manifest.creator == "Profile Creator"
        assert package.manifest.description == "Profile description"
        assert package.hash_workers == 5

    with Package("Explicit", creator="Caller", hash_workers=1, config=config) as package:
        assert package.manifest.creator == "Caller"
        assert package.manifest.description == "Explicit"
        assert package.hash_workers == 1


def test_require_complete_from_profile(tmp_path: Path) -> None:
    archive = _archive_missing_listed_file(tmp_path)
    config = PackagingConfig(package=PackageSettings(require_complete=True))

    with pytest.raises(MissingFileError):
        open_package(archive, config=config)
    assert "b.csv" in open_package(archive, require_complete=False, config=config).manifest.files


def _set_member_headers(
    archive: Path, name: str, *, flags: int = 0, method: int | None = None
) -> None:
    """Patch the local and central headers of ``name`` in a stored archive."""

    with zipfile.ZipFile(archive) as raw:
        offset = raw.getinfo(name).header_offset
    data = bytearray(archive.read_bytes())
    encoded = name.encode("utf-8")

    headers = [offset + 6]
    position = data.find(b"PK\x01\x02")
    while position != -1:
        name_length = struct.unpack_from("<H", data, position + 28)[0]
        if data[position + 46 : position + 46 + name_length] == encoded:
            headers.append(position + 8)
        position = data.find(b"PK\x01\x02", position + 46)

    for flag_offset in headers:
        current = struct.unpack_from("<H", data, flag_offset)[0]
        struct.pack_into("<H", data, flag_offset, current | flags)
        if method is not None:
            struct.pack_into("<H", data, flag_offset + 2, method)
    archive.write_bytes(bytes(data))


def _stored_archive(tmp_path: Path) -> Path:
    with Package() as package:
        package.add_file("data/results.txt", KNOWN_BYTES)
        return package.create_archive(tmp_path / "out.zip", compression=zipfile.ZIP_STORED)


@pytest.mark.parametrize("flags, method", [(0x1, None), (0, 99)])
def test_unreadable_member_is_a_hash_mismatch(
    tmp_path: Path, flags: int, method: int | None
) -> None:
    archive = _stored_archive(tmp_path)
    _set_member_headers(archive, "data/results.txt", flags=flags, method=method)

    with pytest.raises(HashMismatchError) as excinfo:
        open_package(archive)
    assert excinfo.value.path == "data/results.txt"


@pytest.mark.parametrize("flags, method", [(0x1, None), (0, 99)])
def test_unreadable_manifest_is_invalid(tmp_path: Path, flags: int, method: int | None) -> None:
    archive = _stored_archive(tmp_path)
    _set_member_headers(archive, MANIFEST_NAME, flags=flags, method=method)

    with pytest.raises(ManifestInvalidError):
        open_package(archive)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("x/data.json", "application/json"),
        ("x/data.NDJSON", "application/x-ndjson"),
        ("feed.xml", "application/xml"),
        ("table.csv", "text/csv"),
        ("blob.bin", "application/octet-stream"),
    ],
)
def test_detect_content_type(path: str, expected: str) -> None:
    assert detect_content_type(path) == expected


def test_integrity_failure_is_logged(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with Package() as package:
        package.add_file("data/results.txt", KNOWN_BYTES)
        archive = package.create_archive(tmp_path / "out.zip")
    _rewrite_member(archive, "data/results.txt", b"changed")

    caplog.set_level(logging.WARNING, logger="ptd.package")
    with pytest.raises(HashMismatchError):
        open_package(archive)

    assert any(getattr(record, "member", None) == "data/results.txt" for record in caplog.records)
