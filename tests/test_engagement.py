"""Like toggles on posts and comments."""
import pytest
from sqlalchemy import func, select

from community_api.errors import ExternalServiceError, NotFoundError
from community_api.models import Comment, CommentLike, Notification, Post, PostLike
from community_api.services.engagement import EngagementService


@pytest.fixture
def engagement(db, notifier) -> EngagementService:
    return EngagementService(db, notifier)


@pytest.fixture
def make_post(db):
    async def _make(owner, **fields) -> Post:
        post = Post(user_id=owner.id, image_key="posts/test.png", caption="hello", **fields)
        db.add(post)
        await db.commit()
        await db.refresh(post)
        return post

    return _make


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def test_like_then_unlike_round_trips(engagement, make_post, alice, bob):
    post = await make_post(bob)

    liked = await engagement.toggle_post_like(alice, post.id)
    assert liked.is_liked is True
    assert liked.like_count == 1

    unliked = await engagement.toggle_post_like(alice, post.id)
    assert unliked.is_liked is False
    assert unliked.like_count == 0


async def test_like_count_matches_like_rows(engagement, db, make_post, alice, bob, carol):
    post = await make_post(bob)

    await engagement.toggle_post_like(alice, post.id)
    await engagement.toggle_post_like(carol, post.id)
    await engagement.toggle_post_like(bob, post.id)
    await engagement.toggle_post_like(carol, post.id)

    await db.refresh(post)
    assert post.like_count == 2
    assert await _count(db, PostLike) == 2


async def test_like_count_heals_drift(engagement, db, make_post, alice, bob):
    post = await make_post(bob, like_count=7)

    result = await engagement.toggle_post_like(alice, post.id)

    assert result.like_count == 1


async def test_liking_own_post_creates_no_notification(engagement, db, make_post, mailer, bob):
    post = await make_post(bob)

    await engagement.toggle_post_like(bob, post.id)

    assert await _count(db, Notification) == 0
    mailer.send.assert_not_awaited()


async def test_liking_another_post_notifies_owner_once(engagement, db, make_post, mailer, alice, bob):
    post = await make_post(bob)

    await engagement.toggle_post_like(alice, post.id)

    rows = (await db.execute(select(Notification))).scalars().all()
    assert len(rows) == 1
    note = rows[0]
    assert (note.recipient_id, note.sender_id) == (bob.id, alice.id)
    assert note.type == "like"
    assert note.related_post_id == post.id
    assert note.message == "alice liked your post"
    assert mailer.send.await_args.args[0] == "bob@mail.com"


async def test_email_failure_does_not_fail_the_like(engagement, db, make_post, mailer, alice, bob):
    mailer.send.side_effect = ExternalServiceError("smtp down")
    post = await make_post(bob)

    result = await engagement.toggle_post_like(alice, post.id)

    assert result.is_liked is True
    note = (await db.execute(select(Notification))).scalar_one()
    assert note.is_email_sent is False


async def test_successful_email_marks_notification_sent(engagement, session_factory, make_post, alice, bob):
    post = await make_post(bob)

    await engagement.toggle_post_like(alice, post.id)

    async with session_factory() as fresh:
        note = (await fresh.execute(select(Notification))).scalar_one()
        assert note.is_email_sent is True


async def test_unlike_retracts_like_notification(engagement, db, make_post, alice, bob):
    post = await make_post(bob)

    await engagement.toggle_post_like(alice, post.id)
    await engagement.toggle_post_like(alice, post.id)

    assert await _count(db, Notification) == 0


async def test_like_inactive_post_is_not_found(engagement, make_post, alice, bob):
    post = await make_post(bob, is_active=False)
    with pytest.raises(NotFoundError):
        await engagement.toggle_post_like(alice, post.id)


async def test_concurrent_like_insert_counts_once(
    engagement, db, session_factory, make_post, monkeypatch, alice, bob
):
    post = await make_post(bob)
    execute = db.execute
    raced = []

    async def execute_then_race(statement, *args, **kwargs):
        result = await execute(statement, *args, **kwargs)
        if getattr(statement, "is_delete", False) and not raced:
            raced.append(result.rowcount)
            # The same user's other toggle lands its like between our
            # DELETE and our INSERT.
            await db.commit()
            async with session_factory() as other:
                other.add(PostLike(post_id=post.id, user_id=alice.id))
                await other.commit()
        return result

    monkeypatch.setattr(db, "execute", execute_then_race)

    result = await engagement.toggle_post_like(alice, post.id)

    assert raced == [0]
    assert result.is_liked is True
    assert result.like_count == 1
    assert await _count(db, PostLike) == 1


async def test_toggle_comment_like(engagement, db, make_post, alice, bob):
    post = await make_post(bob)
    comment = Comment(post_id=post.id, user_id=bob.id, text="first")
    db.add(comment)
    await db.commit()

    liked = await engagement.toggle_comment_like(alice, comment.id)
    assert (liked.is_liked, liked.like_count) == (True, 1)
    assert await _count(db, CommentLike) == 1

    unliked = await engagement.toggle_comment_like(alice, comment.id)
    assert (unliked.is_liked, unliked.like_count) == (False, 0)
    assert await _count(db, CommentLike) == 0


async def test_post_likes_most_recent_first(engagement, make_post, alice, bob, carol):
    post = await make_post(bob)
    await engagement.toggle_post_like(alice, post.id)
    await engagement.toggle_post_like(carol, post.id)

    page = await engagement.list_post_likes(post.id, 1, 10)

    assert page.total == 2
    assert [like.user.username for like in page.items] == ["carol", "alice"]
