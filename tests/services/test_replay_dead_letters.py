import pytest

from pujo_gallery.core.errors import UpstreamFailure
from pujo_gallery.models.dead_letter import (
    ACTION_ATTACH,
    DEAD_LETTER_ABANDONED,
    DEAD_LETTER_DELIVERED,
    DEAD_LETTER_PENDING,
)
from pujo_gallery.schemas.submission import SubmissionStatus
from pujo_gallery.scripts.replay_dead_letters import replay_dead_letters


@pytest.mark.asyncio
async def test_replayed_post_attaches_card_to_pending_submission(
    services, photo, form, fake_discord, session_factory, stored_letters
) -> None:
    fake_discord.down_status = 503
    with pytest.raises(UpstreamFailure) as exc_info:
        await services.ingestion.submit(photo, form)
    submission_id = exc_info.value.submission_id
    fake_discord.down_status = None

    outcomes = await replay_dead_letters(services, session_factory)

    assert outcomes == {DEAD_LETTER_DELIVERED: 1}
    card = fake_discord.only_message()
    record = await services.store.get(submission_id)
    assert record.notification_ref == card["id"]
    assert record.status is SubmissionStatus.PENDING
    links = fake_discord.links(card)
    assert services.tokens.verify(links["Approve"].rsplit("/", 1)[-1]) == submission_id
    assert [letter.status for letter in stored_letters()] == [DEAD_LETTER_DELIVERED]


@pytest.mark.asyncio
async def test_replayed_post_for_rejected_submission_posts_nothing(
    services, photo, form, fake_discord, session_factory
) -> None:
    fake_discord.down_status = 503
    with pytest.raises(UpstreamFailure) as exc_info:
        await services.ingestion.submit(photo, form)
    fake_discord.down_status = None
    await services.moderation.reject(services.tokens.issue(exc_info.value.submission_id))

    outcomes = await replay_dead_letters(services, session_factory)

    assert outcomes == {DEAD_LETTER_DELIVERED: 1}
    assert fake_discord.messages == {}


@pytest.mark.asyncio
async def test_replayed_transition_marks_card(
    services, photo, form, fake_discord, session_factory
) -> None:
    submission_id = await services.ingestion.submit(photo, form)
    fake_discord.down_status = 502
    await services.moderation.approve(services.tokens.issue(submission_id))
    fake_discord.down_status = None

    outcomes = await replay_dead_letters(services, session_factory)

    assert outcomes == {DEAD_LETTER_DELIVERED: 1}
    card = fake_discord.only_message()
    assert card["content"].endswith("[APPROVED]")
    assert "fields" not in card["embeds"][0]


@pytest.mark.asyncio
async def test_failing_replay_is_counted_then_abandoned(
    services, photo, form, fake_discord, session_factory, stored_letters
) -> None:
    submission_id = await services.ingestion.submit(photo, form)
    fake_discord.down_status = 503
    await services.moderation.reject(services.tokens.issue(submission_id))

    first = await replay_dead_letters(services, session_factory, max_replays=2)
    [letter] = stored_letters()
    assert first == {DEAD_LETTER_PENDING: 1}
    assert letter.retry_count == 1
    assert "503" in letter.last_error

    second = await replay_dead_letters(services, session_factory, max_replays=2)
    [letter] = stored_letters()
    assert second == {DEAD_LETTER_ABANDONED: 1}
    assert letter.retry_count == 2

    # Abandoned letters are not picked up again.
    assert await replay_dead_letters(services, session_factory, max_replays=2) == {}


@pytest.mark.asyncio
async def test_replayed_attach_stores_card_reference(
    services, photo, form, fake_discord, session_factory, stored_letters
) -> None:
    submission_id = await services.ingestion.submit(photo, form)
    card = fake_discord.only_message()
    record = await services.store.get(submission_id)
    record.notification_ref = ""
    await services.store.put(record)
    async with services.store.transition_lock(submission_id):
        await services.ingestion.attach_notification_ref(submission_id, card["id"])
    assert [letter.action for letter in stored_letters()] == [ACTION_ATTACH]

    outcomes = await replay_dead_letters(services, session_factory)

    assert outcomes == {DEAD_LETTER_DELIVERED: 1}
    assert (await services.store.get(submission_id)).notification_ref == card["id"]

    # Decisions made afterwards reach the card again.
    await services.moderation.approve(services.tokens.issue(submission_id))
    assert fake_discord.messages[card["id"]]["content"].endswith("[APPROVED]")


@pytest.mark.asyncio
async def test_replayed_attach_still_blocked_stays_pending(
    services, photo, form, fake_discord, session_factory, stored_letters
) -> None:
    submission_id = await services.ingestion.submit(photo, form)
    card = fake_discord.only_message()
    async with services.store.transition_lock(submission_id):
        await services.ingestion.attach_notification_ref(submission_id, card["id"])

        outcomes = await replay_dead_letters(services, session_factory)

    assert outcomes == {DEAD_LETTER_PENDING: 1}
    [letter] = stored_letters()
    assert letter.retry_count == 1
