import pytest

from helena_agent.schriftsatz.drafts import (
    DraftKind,
    DraftService,
    DraftStatus,
    FristPayload,
    NotizPayload,
    SqliteDraftStore,
)


class _BrokenNotifier:
    async def notify(self, user_id, *, title, message, data) -> None:
        raise ConnectionError("push service down")


@pytest.mark.asyncio
async def test_create_draft_persists_and_notifies(drafts, notifier) -> None:
    draft = await drafts.create_draft(
        akte_id="akte-1",
        kind=DraftKind.FRIST,
        titel="Klagefrist",
        inhalt="Frist nach SS 4 KSchG",
        payload=FristPayload(datum="24.03.2025", vorfrist="20.03.2025"),
        triggered_by="u1",
        owner_id="anwalt-1",
    )

    assert draft.user_id == "helena"
    assert draft.status is DraftStatus.PENDING

    stored = await drafts.get(draft.id)
    assert stored is not None
    assert isinstance(stored.payload, FristPayload)
    assert stored.payload.vorfrist == "20.03.2025"
    assert [draft.id for draft in await drafts.list_for_akte("akte-1")] == [draft.id]

    assert [message["user_id"] for message in notifier.sent] == ["u1", "anwalt-1"]
    assert notifier.sent[0]["data"]["draftId"] == draft.id
    assert notifier.sent[0]["title"] == "Neuer Helena-Entwurf: Klagefrist"


@pytest.mark.asyncio
async def test_owner_equal_to_requester_is_notified_once(drafts, notifier) -> None:
    await drafts.create_draft(
        akte_id="akte-1",
        kind=DraftKind.NOTIZ,
        titel="Notiz",
        inhalt="Mandant ruft zurueck",
        payload=NotizPayload(),
        triggered_by="anwalt-1",
        owner_id="anwalt-1",
    )

    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_draft(tmp_path) -> None:
    service = DraftService(SqliteDraftStore(tmp_path / "helena.db"), notifier=_BrokenNotifier())

    draft = await service.create_draft(
        akte_id="akte-1",
        kind=DraftKind.NOTIZ,
        titel="Notiz",
        inhalt="Text",
        payload=NotizPayload(),
        triggered_by="u1",
    )

    assert await service.get(draft.id) is not None


@pytest.mark.asyncio
async def test_unknown_draft_is_none(drafts) -> None:
    assert await drafts.get("missing") is None
    assert await drafts.list_for_akte("akte-x") == []
