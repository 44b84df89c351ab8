"""
Tests for reference-preserving serialization of entity graphs.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from core.entities import CommandStatus, CommandTask, Implant, UploadedFile
from store import serialization
from store.entities import Relation


@pytest.fixture
def cyclic_pair() -> tuple[Implant, CommandTask]:
    implant = Implant(id=1, hostname="ws-01", operating_system="linux")
    command = CommandTask(id=2, implant=Relation.resolved(implant), command_text="whoami")
    implant.last_command = Relation.resolved(command)
    return implant, command


def test_shared_instance_is_written_once(cyclic_pair):
    implant, command = cyclic_pair
    data = serialization.dump([implant, command])

    assert data[0]["$id"] == "1"
    assert data[0]["$type"] == "implant"
    assert data[0]["last_command"]["$id"] == "2"
    assert data[0]["last_command"]["implant"] == {"$ref": "1"}
    assert data[1] == {"$ref": "2"}


def test_cyclic_graph_is_json_finite(cyclic_pair):
    implant, _ = cyclic_pair
    text = json.dumps(serialization.dump(implant))

    assert text.count('"$ref"') == 1


def test_round_trip_preserves_single_instance_identity(cyclic_pair):
    implant, command = cyclic_pair
    loaded_implant, loaded_command = serialization.load(serialization.dump([implant, command]))

    assert loaded_command.implant.value is loaded_implant
    assert loaded_implant.last_command.value is loaded_command
    assert loaded_implant.hostname == "ws-01"
    assert loaded_command.command_text == "whoami"


def test_round_trip_restores_field_types():
    issued = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    command = CommandTask(
        id=3,
        command_text="ls",
        arguments=("-la", "/tmp"),
        status=CommandStatus.SENT,
        issued_at=issued,
    )
    loaded = serialization.load(serialization.dump(command))

    assert loaded == command
    assert loaded.status is CommandStatus.SENT
    assert loaded.issued_at == issued


def test_unresolved_relation_is_written_as_stub():
    command = CommandTask(id=4, implant=Relation(Implant, 9))
    data = serialization.dump(command)

    assert data["implant"] == {"$relation": "implant", "id": 9}

    loaded = serialization.load(data)
    assert not loaded.implant.is_resolved
    assert loaded.implant.target_id == 9
    assert loaded.implant.entity_type is Implant


def test_non_serialized_fields_are_skipped():
    record = UploadedFile(id=1, filename="loot.bin", size_bytes=3, content=b"abc")
    data = serialization.dump(record)

    assert "content" not in data
    assert serialization.load(data).content == b""


def test_unknown_reference_token_raises():
    with pytest.raises(ValueError):
        serialization.load({"$ref": "17"})


def test_unknown_entity_type_raises():
    with pytest.raises(ValueError):
        serialization.load({"$id": "1", "$type": "nope", "id": 1})


def test_plain_containers_pass_through(cyclic_pair):
    implant, _ = cyclic_pair
    data = serialization.dump({"implants": [implant], "count": 1})

    assert data["count"] == 1
    assert data["implants"][0]["hostname"] == "ws-01"
