from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from chatrelay.errors import NotFoundError, StorageError
from chatrelay.repository import DEFAULT_TITLE, ConversationRepository, generate_title
from chatrelay.schemas.chat import Message
from chatrelay.schemas.conversations import Conversation, ConversationUpsert


@pytest.fixture
async def repository(tmp_path):
    repo = ConversationRepository(tmp_path / "nested" / "conversations.db")
    await repo.initialize()
    try:
        yield repo
    finally:
        await repo.close()


def _upsert(conversation_id: str | None = None, text: str = "Hello there", **kwargs):
    return ConversationUpsert(
        id=conversation_id,
        messages=[Message(role="user", content=text)],
        **kwargs,
    )


@pytest.mark.anyio
async def test_upsert_generates_id_and_title(repository) -> None:
    saved = await repository.upsert(_upsert(model="gpt-4o", provider="openai"))

    assert saved.id.startswith("conv_")
    assert saved.title == "Hello there"
    assert saved.created_at == saved.updated_at

    loaded = await repository.get(saved.id)
    assert loaded.model == "gpt-4o"
    assert loaded.messages[0].text() == "Hello there"


@pytest.mark.anyio
async def test_upsert_preserves_created_at(repository) -> None:
    first = await repository.upsert(_upsert("conv_1"))
    await asyncio.sleep(0.01)
    second = await repository.upsert(_upsert("conv_1", text="Changed", title="Renamed"))

    assert second.created_at == first.created_at
    assert second.updated_at >= first.updated_at
    assert second.title == "Renamed"
    assert (await repository.get("conv_1")).messages[0].text() == "Changed"


@pytest.mark.anyio
async def test_list_returns_newest_first_with_counts(repository) -> None:
    await repository.upsert(_upsert("conv_old"))
    await asyncio.sleep(0.01)
    await repository.upsert(
        ConversationUpsert(
            id="conv_new",
            messages=[
                Message(role="user", content="Hi"),
                Message(role="assistant", content="Hello!"),
            ],
        )
    )

    items = await repository.list()

    assert [item.id for item in items] == ["conv_new", "conv_old"]
    assert items[0].message_count == 2
    assert "messages" not in items[0].to_wire()


@pytest.mark.anyio
async def test_list_skips_corrupt_rows(repository) -> None:
    await repository.upsert(_upsert("conv_ok"))
    connection = repository._connection
    now = datetime.now(timezone.utc).isoformat()
    await connection.execute(
        "INSERT INTO conversations(id, document, created_at, updated_at) VALUES (?, ?, ?, ?)",
        ("conv_bad", "{not json", now, now),
    )
    await connection.commit()

    items = await repository.list()

    assert [item.id for item in items] == ["conv_ok"]
    with pytest.raises(StorageError):
        await repository.get("conv_bad")

    repaired = await repository.upsert(_upsert("conv_bad", text="Fresh"))
    assert repaired.title == "Fresh"


@pytest.mark.anyio
async def test_get_and_delete_unknown_raise_not_found(repository) -> None:
    with pytest.raises(NotFoundError, match="Conversation missing not found"):
        await repository.get("missing")
    with pytest.raises(NotFoundError):
        await repository.delete("missing")


@pytest.mark.anyio
async def test_delete_removes_record(repository) -> None:
    saved = await repository.upsert(_upsert())

    await repository.delete(saved.id)

    with pytest.raises(NotFoundError):
        await repository.get(saved.id)
    assert await repository.list() == []


@pytest.mark.anyio
async def test_delete_keeps_lock_shared_with_waiting_writers(repository) -> None:
    await repository.upsert(_upsert("conv_1"))
    lock = repository._lock_for("conv_1")

    async with lock:
        deleting = asyncio.create_task(repository.delete("conv_1"))
        writing = asyncio.create_task(repository.upsert(_upsert("conv_1", text="Again")))
        await asyncio.sleep(0)
    await asyncio.gather(deleting, writing)

    assert repository._lock_for("conv_1") is lock
    assert (await repository.get("conv_1")).messages[0].text() == "Again"


@pytest.mark.anyio
async def test_concurrent_upserts_keep_one_record(repository) -> None:
    await asyncio.gather(
        *(repository.upsert(_upsert("conv_race", text=f"v{index}")) for index in range(5))
    )

    items = await repository.list()
    assert [item.id for item in items] == ["conv_race"]


@pytest.mark.anyio
async def test_updated_at_never_moves_backwards(repository) -> None:
    future = datetime.now(timezone.utc) + timedelta(hours=1)
    document = Conversation(
        id="conv_future",
        title="Future",
        messages=[],
        created_at=future,
        updated_at=future,
    ).model_dump_json(by_alias=True)
    await repository._connection.execute(
        "INSERT INTO conversations(id, document, created_at, updated_at) VALUES (?, ?, ?, ?)",
        ("conv_future", document, future.isoformat(), future.isoformat()),
    )
    await repository._connection.commit()

    saved = await repository.upsert(_upsert("conv_future"))

    assert saved.updated_at == future


def test_generate_title_truncates_first_user_text() -> None:
    long_text = "x" * 60

    assert generate_title([Message(role="user", content=long_text)]) == "x" * 50 + "..."
    assert generate_title([Message(role="assistant", content="hi")]) == DEFAULT_TITLE
    assert generate_title([]) == DEFAULT_TITLE
