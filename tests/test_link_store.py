"""Tests for the link table and the owner-scoped link store."""

import asyncio
import os
import tempfile
from pathlib import Path

import pytest

from linkscope.core.errors import LinkNotFoundError, LinkValidationError
from linkscope.core.link_store import LinkStore
from linkscope.core.link_table import LinkTable
from linkscope.models.config import Session
from linkscope.models.link import LinkStatus, LinkType, LinkUpdate, OrderUpdate, Platform


@pytest.fixture
async def table():
    """Create an initialized link table in a temp directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        link_table = LinkTable(Path(temp_dir))
        await link_table.initialize()
        yield link_table


@pytest.fixture
def alice(table):
    return LinkStore(table, Session(username="alice"))


@pytest.fixture
def bob(table):
    return LinkStore(table, Session(username="bob"))


class TestCreate:
    """Test LinkStore.create."""

    @pytest.mark.asyncio
    async def test_round_trip(self, alice):
        """Created fields come back unchanged from list()."""
        created = await alice.create(
            url="https://example.com/a",
            summary="An example page.",
            tags=["web", "example", "web"],
            context="saw it on a forum",
            status=LinkStatus.TODO,
        )

        listed = await alice.list()

        assert len(listed) == 1
        record = listed[0]
        assert record.id == created.id
        assert record.url == "https://example.com/a"
        assert record.summary == "An example page."
        assert record.tags == ["web", "example", "web"]
        assert record.context == "saw it on a forum"
        assert record.status == LinkStatus.TODO

    @pytest.mark.asyncio
    async def test_derived_fields(self, alice):
        record = await alice.create(url="youtu.be/xyz", summary="A video")

        assert record.url == "https://youtu.be/xyz"
        assert record.type == LinkType.VIDEO
        assert record.platform == Platform.YOUTUBE
        assert record.user_id == "alice"
        assert record.access_count == 0
        assert record.is_manually_added is False

    @pytest.mark.asyncio
    async def test_empty_url_rejected(self, alice, table):
        with pytest.raises(LinkValidationError):
            await alice.create(url="  ", summary="x")
        assert table.stats()["rows"] == 0

    @pytest.mark.asyncio
    async def test_manual_requires_summary(self, alice):
        with pytest.raises(LinkValidationError, match="Summary is required"):
            await alice.create(url="https://a.com", summary="", manual=True)

    @pytest.mark.asyncio
    async def test_manual_flag_recorded(self, alice):
        record = await alice.create(url="https://a.com", summary="A", manual=True)
        assert record.is_manually_added is True

    @pytest.mark.asyncio
    async def test_default_order_is_end_of_list(self, alice):
        first = await alice.create(url="https://a.com", summary="A")
        second = await alice.create(url="https://b.com", summary="B")
        explicit = await alice.create(url="https://c.com", summary="C", order=7)

        assert first.order == 0
        assert second.order == 1
        assert explicit.order == 7

    @pytest.mark.asyncio
    async def test_rows_persist_across_reload(self, alice, table):
        created = await alice.create(url="https://a.com", summary="A", tags=["x"])

        reloaded = LinkTable(table.root)
        await reloaded.initialize()

        assert reloaded.get(created.id) == created

    @pytest.mark.asyncio
    async def test_corrupted_row_skipped(self, alice, table):
        await alice.create(url="https://a.com", summary="A")
        (table.rows_path / "broken.yaml").write_text("{not: [valid", encoding="utf-8")

        reloaded = LinkTable(table.root)
        await reloaded.initialize()

        assert reloaded.stats() == {"rows": 1, "errors": 1}


class TestVisibility:
    """Test cross-user reads."""

    @pytest.mark.asyncio
    async def test_shared_statuses_visible_to_others(self, alice, bob):
        active = await alice.create(url="https://a.com", summary="A")
        archived = await alice.create(url="https://b.com", summary="B", status=LinkStatus.ARCHIVED)

        ids = {r.id for r in await bob.list()}

        assert ids == {active.id, archived.id}

    @pytest.mark.asyncio
    async def test_private_statuses_hidden_from_others(self, alice, bob):
        todo = await alice.create(url="https://a.com", summary="A", status=LinkStatus.TODO)
        done = await alice.create(url="https://b.com", summary="B", status=LinkStatus.COMPLETED)

        assert await bob.list() == []
        assert {r.id for r in await alice.list()} == {todo.id, done.id}

    @pytest.mark.asyncio
    async def test_search_matches_text_and_exact_tag(self, alice, bob):
        by_text = await alice.create(url="https://python.org", summary="Language home")
        by_tag = await alice.create(url="https://b.com", summary="B", tags=["python"])
        await alice.create(url="https://c.com", summary="C", tags=["pythonic"])
        hidden = await alice.create(
            url="https://python.dev", summary="todo", status=LinkStatus.TODO
        )

        bob_ids = {r.id for r in await bob.search("python")}
        alice_ids = {r.id for r in await alice.search("python")}

        assert by_text.id in bob_ids
        assert by_tag.id in bob_ids
        assert hidden.id not in bob_ids
        assert hidden.id in alice_ids

    @pytest.mark.asyncio
    async def test_list_by_type(self, alice):
        video = await alice.create(url="https://youtu.be/1", summary="V")
        await alice.create(url="https://a.com", summary="L")

        videos = await alice.list_by_type(LinkType.VIDEO)

        assert [r.id for r in videos] == [video.id]


class TestOwnership:
    """Test (id, user) scoping of writes."""

    @pytest.mark.asyncio
    async def test_update_by_owner(self, alice):
        record = await alice.create(url="https://a.com", summary="A")

        updated = await alice.update(record.id, LinkUpdate(summary="B", tags=["t"]))

        assert updated.summary == "B"
        assert updated.tags == ["t"]
        assert updated.url == record.url
        assert updated.created_at == record.created_at
        assert updated.updated_at >= record.updated_at

    @pytest.mark.asyncio
    async def test_update_accepts_dict(self, alice):
        record = await alice.create(url="https://a.com", summary="A")
        updated = await alice.update(record.id, {"status": "todo"})
        assert updated.status == LinkStatus.TODO

    @pytest.mark.asyncio
    async def test_other_user_cannot_update_private(self, alice, bob):
        record = await alice.create(url="https://a.com", summary="A", status=LinkStatus.TODO)

        with pytest.raises(LinkNotFoundError):
            await bob.update(record.id, LinkUpdate(summary="hijacked"))

    @pytest.mark.asyncio
    async def test_other_user_cannot_update_shared(self, alice, bob):
        record = await alice.create(url="https://a.com", summary="A")

        with pytest.raises(LinkNotFoundError):
            await bob.update(record.id, LinkUpdate(summary="hijacked"))

    @pytest.mark.asyncio
    async def test_other_user_cannot_delete(self, alice, bob):
        record = await alice.create(url="https://a.com", summary="A", status=LinkStatus.TODO)

        with pytest.raises(LinkNotFoundError):
            await bob.delete(record.id)

        assert len(await alice.list()) == 1

    @pytest.mark.asyncio
    async def test_delete_is_terminal(self, alice, table):
        record = await alice.create(url="https://a.com", summary="A")

        await alice.delete(record.id)

        assert await alice.list() == []
        assert not (table.rows_path / f"{record.id}.yaml").exists()
        with pytest.raises(LinkNotFoundError):
            await alice.delete(record.id)


class TestTrackAccess:
    """Test best-effort access tracking."""

    @pytest.mark.asyncio
    async def test_increments_count(self, alice):
        record = await alice.create(url="https://a.com", summary="A")

        await alice.track_access(record.id)
        await alice.track_access(record.id)

        stored = (await alice.list())[0]
        assert stored.access_count == 2
        assert stored.last_accessed is not None

    @pytest.mark.asyncio
    async def test_shared_link_opened_by_other_user(self, alice, bob):
        record = await alice.create(url="https://a.com", summary="A")

        await bob.track_access(record.id)

        assert (await alice.list())[0].access_count == 1

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, alice):
        await alice.track_access("missing-id")


class TestReorder:
    """Test non-atomic reorder batches."""

    @pytest.mark.asyncio
    async def test_applies_every_update(self, alice):
        a = await alice.create(url="https://a.com", summary="A")
        b = await alice.create(url="https://b.com", summary="B")

        failed = await alice.reorder([OrderUpdate(id=a.id, order=1), {"id": b.id, "order": 0}])

        assert failed == []
        orders = {r.id: r.order for r in await alice.list()}
        assert orders == {a.id: 1, b.id: 0}

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_survivors(self, alice, bob):
        """One failing update does not roll back the others."""
        a = await alice.create(url="https://a.com", summary="A")
        foreign = await bob.create(url="https://bob.com", summary="Bob's", order=5)
        c = await alice.create(url="https://c.com", summary="C")

        failed = await alice.reorder(
            [
                OrderUpdate(id=c.id, order=0),
                OrderUpdate(id=foreign.id, order=1),
                OrderUpdate(id=a.id, order=2),
            ]
        )

        assert failed == [foreign.id]
        orders = {r.id: r.order for r in await alice.list()}
        assert orders[c.id] == 0
        assert orders[a.id] == 2
        assert orders[foreign.id] == 5


class TestConcurrentAccess:
    """Test that concurrent opens are all counted."""

    @pytest.mark.asyncio
    async def test_concurrent_opens_all_counted(self, alice, bob, table):
        record = await alice.create(url="https://a.com", summary="A")

        await asyncio.gather(
            *(alice.track_access(record.id) for _ in range(5)),
            *(bob.track_access(record.id) for _ in range(3)),
        )

        assert table.get(record.id).access_count == 8

    @pytest.mark.asyncio
    async def test_private_record_not_counted_for_other_user(self, alice, bob, table):
        record = await alice.create(url="https://a.com", summary="A", status=LinkStatus.TODO)

        await bob.track_access(record.id)

        assert table.get(record.id).access_count == 0


class TestSharedStorage:
    """Two tables on one root, as when the server and the CLI share storage."""

    @pytest.fixture
    async def other_table(self, table):
        link_table = LinkTable(table.root)
        await link_table.initialize()
        return link_table

    @pytest.mark.asyncio
    async def test_rows_inserted_elsewhere_are_listed(self, alice, other_table):
        other = LinkStore(other_table, Session(username="alice"))
        created = await other.create(url="https://cli.example.com", summary="From the CLI")

        assert [r.id for r in await alice.list()] == [created.id]

    @pytest.mark.asyncio
    async def test_rows_deleted_elsewhere_disappear(self, alice, other_table):
        created = await alice.create(url="https://a.com", summary="A")
        other = LinkStore(other_table, Session(username="alice"))

        await other.delete(created.id)

        assert await alice.list() == []
        with pytest.raises(LinkNotFoundError):
            await alice.update(created.id, LinkUpdate(summary="resurrected"))
        assert not (alice.table.rows_path / f"{created.id}.yaml").exists()

    @pytest.mark.asyncio
    async def test_rows_updated_elsewhere_are_reloaded(self, alice, table, other_table):
        created = await alice.create(url="https://a.com", summary="A")
        other = LinkStore(other_table, Session(username="alice"))
        await other.update(created.id, LinkUpdate(summary="Edited elsewhere", tags=["x"]))

        # Bump the mtime so coarse filesystem clocks still see a change
        row_file = table.rows_path / f"{created.id}.yaml"
        stat = row_file.stat()
        os.utime(row_file, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

        updated = await alice.update(created.id, LinkUpdate(status=LinkStatus.TODO))

        assert updated.summary == "Edited elsewhere"
        assert updated.tags == ["x"]
        assert updated.status == LinkStatus.TODO

    @pytest.mark.asyncio
    async def test_corrupt_row_added_later_is_counted(self, alice, table):
        await alice.create(url="https://a.com", summary="A")
        (table.rows_path / "broken.yaml").write_text("{not: [valid", encoding="utf-8")

        assert table.stats() == {"rows": 1, "errors": 1}

        (table.rows_path / "broken.yaml").unlink()
        assert table.stats() == {"rows": 1, "errors": 0}
