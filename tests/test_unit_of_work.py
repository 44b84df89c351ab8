"""
Tests for the request-scoped unit of work.

Covers:
- all-or-nothing commit on stale identifiers and cancellation
- lazy relation materialization and memoization
- per-type serialization of concurrent commits
- conflicting read-modify-write commits abort instead of overwriting
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from conftest import Node

from core.errors import CommitAbortedError, CommitCancelledError, NotFoundError
from store.entities import Relation
from store.repository import Repository
from store.unit_of_work import MutationKind


class TestCommit:
    def test_commit_without_pending_is_noop(self, store):
        store.commit()
        assert not store.has_pending

    def test_pending_mutations_are_recorded_in_order(self, store):
        nodes = Repository(store, Node)
        node = nodes.add(Node(label="a"))
        nodes.update(node)
        nodes.remove(node.id)

        assert [m.kind for m in store.pending] == [
            MutationKind.ADD,
            MutationKind.UPDATE,
            MutationKind.REMOVE,
        ]

    def test_stale_update_aborts_whole_unit(self, store, new_store):
        Repository(store, Node).add(Node(id=1, label="shared"))
        store.commit()

        first = new_store()
        first_nodes = Repository(first, Node)
        added = first_nodes.add(Node(label="added in same unit"))
        shared = first_nodes.get_by_id(1)
        shared.label = "edited"
        first_nodes.update(shared)

        second = new_store()
        Repository(second, Node).remove(1)
        second.commit()

        with pytest.raises(CommitAbortedError):
            first.commit()

        check = Repository(new_store(), Node)
        assert not check.exists(added.id)
        assert list(check.get_all()) == []
        assert not first.has_pending

    def test_duplicate_explicit_id_aborts(self, store, new_store):
        Repository(store, Node).add(Node(id=7, label="first"))
        store.commit()

        other = new_store()
        Repository(other, Node).add(Node(id=7, label="second"))
        with pytest.raises(CommitAbortedError):
            other.commit()

        assert Repository(new_store(), Node).get_by_id(7).label == "first"

    def test_cancelled_commit_applies_nothing(self, store, new_store):
        nodes = Repository(store, Node)
        nodes.add(Node(label="a"))
        nodes.add(Node(label="b"))
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(CommitCancelledError):
            store.commit(cancel_event=cancel)

        assert Repository(new_store(), Node).count() == 0

    def test_store_level_cancel_event_is_observed(self, database):
        from store.unit_of_work import EntityStore

        cancel = threading.Event()
        store = EntityStore(database, cancel_event=cancel)
        Repository(store, Node).add(Node(label="a"))
        cancel.set()

        with pytest.raises(CommitAbortedError):
            store.commit()

    def test_rollback_discards_pending(self, store):
        nodes = Repository(store, Node)
        nodes.add(Node(label="a"))
        store.rollback()
        store.commit()

        assert nodes.count() == 0

    def test_close_with_pending_work_logs_warning(self, store, caplog):
        Repository(store, Node).add(Node(label="forgotten"))
        with caplog.at_level(logging.WARNING, logger="store.unit_of_work"):
            store.close()

        assert "unit_of_work_discarded" in caplog.text
        assert not store.has_pending


class TestResolve:
    def test_fetch_marks_relation_resolved_and_memoizes(self, store):
        nodes = Repository(store, Node)
        parent = nodes.add(Node(label="parent"))
        child = nodes.add(Node(label="child", parent=Relation.to(parent)))
        store.commit()

        loaded = nodes.get_by_id(child.id)
        assert not loaded.parent.is_resolved

        first = loaded.parent.fetch(store)
        assert loaded.parent.is_resolved
        assert loaded.parent.fetch(store) is first
        assert first.label == "parent"

    def test_relations_to_same_target_share_one_instance(self, store):
        nodes = Repository(store, Node)
        parent = nodes.add(Node(label="parent"))
        nodes.add(Node(label="a", parent=Relation.to(parent)))
        nodes.add(Node(label="b", parent=Relation.to(parent)))
        store.commit()

        a, b = [n for n in nodes.get_all() if n.parent is not None]
        assert a.parent.fetch(store) is b.parent.fetch(store)
        assert a.parent.fetch(store) is nodes.get_by_id(parent.id)

    def test_unresolved_value_access_raises(self, store):
        relation = Relation(Node, 1)
        with pytest.raises(RuntimeError):
            relation.value

    def test_resolved_relation_is_reset_when_target_removed(self, store):
        nodes = Repository(store, Node)
        parent = nodes.add(Node(label="parent"))
        child = nodes.add(Node(label="child", parent=Relation.to(parent)))
        store.commit()

        loaded = nodes.get_by_id(child.id)
        loaded.parent.fetch(store)
        nodes.remove(parent.id)
        store.commit()

        assert not loaded.parent.is_resolved
        with pytest.raises(NotFoundError):
            loaded.parent.fetch(store)

    def test_relation_resolved_outside_the_store_is_reread(self, store):
        nodes = Repository(store, Node)
        a = nodes.add(Node(label="A"))
        b = nodes.add(Node(label="B", parent=Relation.resolved(a)))
        store.commit()

        nodes.remove(a.id)
        store.commit()

        assert b.parent.is_resolved
        with pytest.raises(NotFoundError):
            b.parent.fetch(store)

    def test_relation_resolved_outside_the_store_binds_store_instance(self, store):
        nodes = Repository(store, Node)
        a = nodes.add(Node(label="A"))
        store.commit()

        relation = Relation.resolved(a)
        fetched = relation.fetch(store)

        assert fetched is not a
        assert fetched is nodes.get_by_id(a.id)
        assert relation.fetch(store) is fetched

    def test_detached_copy_drops_resolution(self, store):
        nodes = Repository(store, Node)
        parent = nodes.add(Node(label="parent"))
        child = nodes.add(Node(label="child", parent=Relation.to(parent)))
        store.commit()

        loaded = nodes.get_by_id(child.id)
        loaded.parent.fetch(store)
        copy = loaded.detached_copy()

        assert copy == loaded
        assert not copy.parent.is_resolved


class TestConcurrency:
    def test_concurrent_commits_lose_no_adds(self, new_store):
        def worker(n: int) -> None:
            store = new_store()
            nodes = Repository(store, Node)
            for i in range(25):
                nodes.add(Node(label=f"{n}-{i}"))
                store.commit()

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(worker, range(8)))

        nodes = list(Repository(new_store(), Node).get_all())
        assert len(nodes) == 200
        assert len({n.id for n in nodes}) == 200

    def test_concurrent_updates_of_distinct_entities(self, store, new_store):
        nodes = Repository(store, Node)
        ids = [nodes.add(Node(label="v0")).id for _ in range(16)]
        store.commit()

        def worker(node_id: int) -> None:
            request_store = new_store()
            repo = Repository(request_store, Node)
            node = repo.get_by_id(node_id)
            node.label = "v1"
            repo.update(node)
            request_store.commit()

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(worker, ids))

        assert {n.label for n in Repository(new_store(), Node).get_all()} == {"v1"}


class TestConflictingWrites:
    @pytest.fixture
    def node_id(self, store) -> int:
        node = Repository(store, Node).add(Node(label="v0"))
        store.commit()
        return node.id

    def test_interleaved_read_modify_write_aborts_the_later_commit(self, new_store, node_id):
        first, second = new_store(), new_store()
        first_nodes, second_nodes = Repository(first, Node), Repository(second, Node)
        from_first = first_nodes.get_by_id(node_id)
        from_second = second_nodes.get_by_id(node_id)

        from_second.parent = Relation(Node, 99)
        second_nodes.update(from_second)
        second.commit()

        from_first.label = "edited"
        first_nodes.update(from_first)
        with pytest.raises(CommitAbortedError):
            first.commit()

        stored = Repository(new_store(), Node).get_by_id(node_id)
        assert stored.label == "v0"
        assert stored.parent == Relation(Node, 99)

    def test_remove_of_changed_entity_aborts(self, new_store, node_id):
        first, second = new_store(), new_store()
        Repository(first, Node).get_by_id(node_id)
        changed = Repository(second, Node).get_by_id(node_id)
        changed.label = "v1"
        Repository(second, Node).update(changed)
        second.commit()

        Repository(first, Node).remove(node_id)
        with pytest.raises(CommitAbortedError):
            first.commit()

        assert Repository(new_store(), Node).get_by_id(node_id).label == "v1"

    def test_repeated_updates_in_one_unit_commit(self, store, new_store, node_id):
        nodes = Repository(store, Node)
        node = nodes.get_by_id(node_id)
        node.label = "v1"
        nodes.update(node)
        node.label = "v2"
        nodes.update(node)
        store.commit()

        node.label = "v3"
        nodes.update(node)
        store.commit()

        assert Repository(new_store(), Node).get_by_id(node_id).label == "v3"

    def test_only_one_concurrent_claim_wins(self, new_store, node_id):
        barrier = threading.Barrier(8)

        def claim(worker: int) -> bool:
            request_store = new_store()
            nodes = Repository(request_store, Node)
            node = nodes.get_by_id(node_id)
            barrier.wait()
            node.label = f"claimed-by-{worker}"
            nodes.update(node)
            try:
                request_store.commit()
            except CommitAbortedError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(claim, range(8)))

        assert results.count(True) == 1
        winner = results.index(True)
        assert Repository(new_store(), Node).get_by_id(node_id).label == f"claimed-by-{winner}"

    def test_multi_type_commit_publishes_once(self, store, database, monkeypatch):
        from core.entities import Implant

        published = []
        original = database.publish

        def recording_publish(collections):
            published.append(sorted(collections))
            original(collections)

        monkeypatch.setattr(database, "publish", recording_publish)
        Repository(store, Node).add(Node(label="n"))
        Repository(store, Implant).add(Implant(hostname="h"))
        store.commit()

        assert published == [sorted(["test-node", "implant"])]

    def test_racing_checkins_hand_out_a_command_once(self, store, new_store):
        from commands.service import next_command
        from core.entities import CommandStatus, CommandTask, Implant

        implant = Repository(store, Implant).add(Implant(hostname="h"))
        Repository(store, CommandTask).add(CommandTask(implant=Relation.to(implant), command_text="whoami"))
        store.commit()

        first, second = new_store(), new_store()
        # Both check-ins read before either commits.
        for request_store in (first, second):
            Repository(request_store, Implant).get_by_id(implant.id)
            list(Repository(request_store, CommandTask).get_all())

        sent = next_command(Repository(second, CommandTask), Repository(second, Implant), implant.id)
        with pytest.raises(CommitAbortedError):
            next_command(Repository(first, CommandTask), Repository(first, Implant), implant.id)

        assert sent.status is CommandStatus.SENT
        stored = list(Repository(new_store(), CommandTask).get_all())
        assert [c.status for c in stored] == [CommandStatus.SENT]
