"""Follow / unfollow behaviour and the denormalised follow counters."""
import pytest
from sqlalchemy import func, select

from community_api import store
from community_api.errors import AlreadyFollowingError, ConflictError, NotFoundError, SelfFollowError
from community_api.models import Follow, Notification, NotificationType
from community_api.services.social_graph import SocialGraphService


@pytest.fixture
def graph(db, notifier) -> SocialGraphService:
    return SocialGraphService(db, notifier)


async def _edge_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(Follow))).scalar_one()


async def test_follow_updates_both_counters(graph, db, alice, bob):
    result = await graph.follow_user(alice, bob.id)

    assert result.is_following is True
    assert result.is_follow_back is False
    assert result.follower_count == 1
    assert result.following_count == 1

    await db.refresh(alice)
    await db.refresh(bob)
    assert alice.following_count == 1
    assert bob.follower_count == 1
    assert await store.is_following(db, alice.id, bob.id)


async def test_follow_back_is_reported(graph, db, alice, bob):
    await graph.follow_user(alice, bob.id)
    result = await graph.follow_user(bob, alice.id)

    assert result.is_follow_back is True
    await db.refresh(alice)
    await db.refresh(bob)
    assert (alice.follower_count, alice.following_count) == (1, 1)
    assert (bob.follower_count, bob.following_count) == (1, 1)


async def test_follow_then_unfollow_restores_state(graph, db, alice, bob):
    await graph.follow_user(alice, bob.id)
    result = await graph.unfollow_user(alice, bob.id)

    assert result.is_following is False
    assert result.follower_count == 0
    assert result.following_count == 0
    assert not await store.is_following(db, alice.id, bob.id)
    assert await _edge_count(db) == 0


async def test_self_follow_is_rejected(graph, db, alice):
    with pytest.raises(SelfFollowError):
        await graph.follow_user(alice, alice.id)
    assert await _edge_count(db) == 0


async def test_self_follow_is_a_conflict_answered_with_400():
    assert issubclass(SelfFollowError, ConflictError)
    assert SelfFollowError.status_code == 400


async def test_duplicate_follow_leaves_state_untouched(graph, db, alice, bob):
    await graph.follow_user(alice, bob.id)

    with pytest.raises(AlreadyFollowingError):
        await graph.follow_user(alice, bob.id)

    await db.refresh(alice)
    await db.refresh(bob)
    assert alice.following_count == 1
    assert bob.follower_count == 1
    assert await _edge_count(db) == 1


async def test_concurrent_duplicate_follow_is_rejected(
    graph, db, session_factory, monkeypatch, alice, bob
):
    flush = db.flush

    async def flush_after_competing_follow(*args, **kwargs):
        async with session_factory() as other:
            other.add(Follow(follower_id=alice.id, followee_id=bob.id))
            await other.commit()
        await flush(*args, **kwargs)

    monkeypatch.setattr(db, "flush", flush_after_competing_follow)

    with pytest.raises(AlreadyFollowingError):
        await graph.follow_user(alice, bob.id)

    monkeypatch.setattr(db, "flush", flush)
    await db.refresh(alice)
    await db.refresh(bob)
    assert alice.following_count == 0
    assert bob.follower_count == 0
    assert await _edge_count(db) == 1
    notes = (await db.execute(select(Notification))).scalars().all()
    assert notes == []


async def test_follow_inactive_user_is_not_found(graph, make_user, alice):
    ghost = await make_user("ghost", is_active=False)
    with pytest.raises(NotFoundError):
        await graph.follow_user(alice, ghost.id)


async def test_unfollow_without_edge_keeps_counters(graph, db, alice, bob, carol):
    await graph.follow_user(carol, bob.id)

    result = await graph.unfollow_user(alice, bob.id)

    assert result.follower_count == 1
    assert result.following_count == 0


async def test_unfollow_clamps_counters_at_zero(graph, db, alice, bob):
    db.add(Follow(follower_id=alice.id, followee_id=bob.id))
    await db.commit()

    # Counters drifted to 0 while the edge exists
    result = await graph.unfollow_user(alice, bob.id)

    assert result.follower_count == 0
    assert result.following_count == 0


async def test_follow_notifies_and_unfollow_retracts(graph, db, mailer, alice, bob):
    await graph.follow_user(alice, bob.id)

    rows = (await db.execute(select(Notification))).scalars().all()
    assert len(rows) == 1
    assert rows[0].recipient_id == bob.id
    assert rows[0].type == NotificationType.FOLLOW.value
    assert rows[0].message == "alice started following you"
    mailer.send.assert_awaited_once()
    assert mailer.send.await_args.args[0] == "bob@mail.com"

    await graph.unfollow_user(alice, bob.id)
    remaining = (await db.execute(select(func.count()).select_from(Notification))).scalar_one()
    assert remaining == 0


async def test_list_followers_flags_viewer_follows(graph, alice, bob, carol):
    await graph.follow_user(alice, carol.id)
    await graph.follow_user(bob, carol.id)
    await graph.follow_user(alice, bob.id)

    page = await graph.list_followers(carol.id, 1, 10, viewer=alice)

    assert page.total == 2
    flags = {entry.user.username: entry.is_following for entry in page.items}
    assert flags == {"alice": False, "bob": True}


async def test_own_following_list_is_all_followed(graph, alice, bob, carol):
    await graph.follow_user(alice, bob.id)
    await graph.follow_user(alice, carol.id)

    page = await graph.list_following(alice.id, 1, 10, viewer=alice)

    assert page.total == 2
    assert all(entry.is_following for entry in page.items)


async def test_listing_is_paginated(graph, make_user, alice):
    for n in range(3):
        follower = await make_user(f"fan_{n}")
        await graph.follow_user(follower, alice.id)

    page = await graph.list_followers(alice.id, 2, 2)

    assert page.total == 3
    assert len(page.items) == 1
    assert page.total_pages == 2
    assert page.has_more is False
