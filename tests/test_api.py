"""End-to-end HTTP behaviour through the FastAPI app."""
from unittest.mock import AsyncMock, MagicMock

from community_api.clients.redis_client import RateLimiter


def _post_image(client, headers, png_bytes, caption="hello"):
    resp = client.post(
        "/api/posts",
        headers=headers,
        files={"image": ("photo.png", png_bytes, "image/png")},
        data={"caption": caption},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["post"]


# ─────────────────────────── Envelope & errors ───────────────────────────────


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_unknown_route_uses_envelope(client):
    resp = client.get("/api/nowhere")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "Route not found"}


def test_auth_required(client):
    resp = client.post("/api/posts")
    assert resp.status_code == 401
    assert resp.json()["message"] == "Access token is required"


def test_malformed_id_is_validation_error(client):
    resp = client.get("/api/posts/not-an-id")
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["errors"][0]["field"] == "post_id"


# ─────────────────────────── Auth ────────────────────────────────────────────


def test_register_login_refresh_logout(client, register):
    user, headers = register("alice")
    assert user["username"] == "alice"
    assert user["email"] == "alice@mail.com"
    assert user["followerCount"] == 0

    login = client.post("/api/auth/login", json={"emailOrUsername": "ALICE@mail.com", "password": "Passw0rd1"})
    assert login.status_code == 200
    tokens = login.json()["data"]

    refreshed = client.post("/api/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
    assert refreshed.status_code == 200
    new_refresh = refreshed.json()["data"]["refreshToken"]

    # The rotated-out token no longer works
    stale = client.post("/api/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
    assert stale.status_code == 401
    assert stale.json()["message"] == "Invalid refresh token"

    profile = client.get("/api/auth/profile", headers=headers)
    assert profile.json()["data"]["user"]["id"] == user["id"]

    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    after_logout = client.post("/api/auth/refresh-token", json={"refreshToken": new_refresh})
    assert after_logout.status_code == 401


def test_register_validation(client):
    resp = client.post(
        "/api/auth/register",
        json={"username": "a", "email": "not-an-email", "password": "weak"},
    )
    assert resp.status_code == 400
    fields = {err["field"] for err in resp.json()["errors"]}
    assert {"username", "email", "password"} <= fields


def test_register_duplicates(client, register):
    register("alice")
    dup_email = client.post(
        "/api/auth/register",
        json={"username": "alice2", "email": "alice@mail.com", "password": "Passw0rd1"},
    )
    assert dup_email.status_code == 409
    assert dup_email.json()["message"] == "Email already registered"

    dup_name = client.post(
        "/api/auth/register",
        json={"username": "alice", "email": "other@mail.com", "password": "Passw0rd1"},
    )
    assert dup_name.json()["message"] == "Username already taken"


def test_wrong_password(client, register):
    register("alice")
    resp = client.post("/api/auth/login", json={"emailOrUsername": "alice", "password": "Wrong0ne"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid credentials"


# ─────────────────────────── Follows ─────────────────────────────────────────


def test_follow_scenario(client, register, mailer):
    alice, alice_h = register("alice")
    bob, bob_h = register("bob")

    first = client.post(f"/api/users/{bob['id']}/follow", headers=alice_h).json()
    assert first["data"] == {
        "isFollowing": True,
        "isFollowBack": False,
        "followerCount": 1,
        "followingCount": 1,
    }

    back = client.post(f"/api/users/{alice['id']}/follow", headers=bob_h).json()
    assert back["data"]["isFollowBack"] is True
    assert back["message"] == "You are now following each other!"

    for user, headers in ((alice, bob_h), (bob, alice_h)):
        profile = client.get(f"/api/users/{user['id']}", headers=headers).json()["data"]["user"]
        assert (profile["followerCount"], profile["followingCount"]) == (1, 1)
        assert profile["isFollowing"] is True

    again = client.post(f"/api/users/{bob['id']}/follow", headers=alice_h)
    assert again.status_code == 400
    assert again.json()["message"] == "You are already following this user"

    me = client.post(f"/api/users/{alice['id']}/follow", headers=alice_h)
    assert me.status_code == 400
    assert me.json()["message"] == "You cannot follow yourself"

    # Background email tasks have run by the time the response is returned
    assert mailer.send.await_count == 2


def test_followers_listing(client, register):
    alice, alice_h = register("alice")
    bob, bob_h = register("bob")
    client.post(f"/api/users/{bob['id']}/follow", headers=alice_h)

    resp = client.get(f"/api/users/{bob['id']}/followers", headers=bob_h).json()["data"]
    assert [u["username"] for u in resp["users"]] == ["alice"]
    assert resp["users"][0]["isFollowing"] is False
    assert resp["pagination"]["total"] == 1

    unfollow = client.delete(f"/api/users/{bob['id']}/follow", headers=alice_h).json()["data"]
    assert unfollow["followerCount"] == 0


# ─────────────────────────── Posts, comments, likes ─────────────────────────


def test_post_comment_reply_scenario(client, register, png_bytes):
    alice, alice_h = register("alice")
    bob, bob_h = register("bob")
    carol, carol_h = register("carol")

    post = _post_image(client, bob_h, png_bytes)
    assert post["caption"] == "hello"
    assert post["imageUrl"].startswith("https://media.test/posts/")

    comment = client.post(f"/api/comments/post/{post['id']}", headers=alice_h, json={"text": "hi"})
    assert comment.status_code == 201
    comment_id = comment.json()["data"]["comment"]["id"]
    detail = client.get(f"/api/posts/{post['id']}").json()["data"]
    assert detail["post"]["commentCount"] == 1

    reply = client.post(
        f"/api/comments/post/{post['id']}",
        headers=carol_h,
        json={"text": "welcome", "parentCommentId": comment_id},
    )
    assert reply.status_code == 201
    assert reply.json()["data"]["comment"]["parentCommentId"] == comment_id

    comments = client.get(f"/api/comments/post/{post['id']}").json()["data"]["comments"]
    assert len(comments) == 1
    assert len(comments[0]["replies"]) == 1

    bob_inbox = client.get("/api/notifications", headers=bob_h).json()["data"]
    alice_inbox = client.get("/api/notifications", headers=alice_h).json()["data"]
    assert bob_inbox["unreadCount"] == 2
    assert [n["message"] for n in bob_inbox["notifications"]] == [
        "carol replied to your comment",
        "alice commented on your post",
    ]
    assert [n["message"] for n in alice_inbox["notifications"]] == ["carol replied to your comment"]


def test_like_toggle_and_listing(client, register, png_bytes):
    alice, alice_h = register("alice")
    bob, bob_h = register("bob")
    post = _post_image(client, bob_h, png_bytes)

    liked = client.post(f"/api/likes/post/{post['id']}", headers=alice_h).json()
    assert liked["data"] == {"isLiked": True, "likeCount": 1}
    assert liked["message"] == "Post liked"

    listing = client.get(f"/api/posts/{post['id']}/likes").json()["data"]
    assert [l["user"]["username"] for l in listing["likes"]] == ["alice"]
    assert client.get(f"/api/likes/post/{post['id']}").json()["data"]["totalLikes"] == 1

    as_alice = client.get("/api/posts", headers=alice_h).json()["data"]["posts"]
    assert as_alice[0]["isLikedByUser"] is True
    anonymous = client.get("/api/posts").json()["data"]["posts"]
    assert anonymous[0]["isLikedByUser"] is None

    note = client.get("/api/notifications", headers=bob_h).json()["data"]["notifications"][0]
    assert note["type"] == "like"
    assert note["sender"]["username"] == "alice"

    unliked = client.post(f"/api/likes/post/{post['id']}", headers=alice_h).json()
    assert unliked["data"] == {"isLiked": False, "likeCount": 0}
    assert client.get("/api/notifications/unread-count", headers=bob_h).json()["data"]["unreadCount"] == 0


def test_post_upload_validation(client, register):
    _, headers = register("bob")

    missing = client.post("/api/posts", headers=headers, data={"caption": "no image"})
    assert missing.status_code == 400
    assert missing.json()["message"] == "Image is required"

    not_image = client.post(
        "/api/posts", headers=headers, files={"image": ("notes.txt", b"hello", "text/plain")}
    )
    assert not_image.status_code == 400
    assert not_image.json()["message"] == "Only image files are allowed"


def test_delete_post_permissions_and_cascade(client, register, png_bytes):
    alice, alice_h = register("alice")
    bob, bob_h = register("bob")
    post = _post_image(client, bob_h, png_bytes)
    client.post(f"/api/comments/post/{post['id']}", headers=alice_h, json={"text": "hi"})

    forbidden = client.delete(f"/api/posts/{post['id']}", headers=alice_h)
    assert forbidden.status_code == 403

    assert client.delete(f"/api/posts/{post['id']}", headers=bob_h).status_code == 200
    assert client.get(f"/api/posts/{post['id']}").status_code == 404
    comments = client.get(f"/api/posts/{post['id']}/comments").json()["data"]
    assert comments["comments"] == []
    assert client.get("/api/notifications", headers=bob_h).json()["data"]["notifications"] == []


def test_notification_inbox_actions(client, register):
    alice, alice_h = register("alice")
    bob, bob_h = register("bob")
    client.post(f"/api/users/{bob['id']}/follow", headers=alice_h)

    note_id = client.get("/api/notifications", headers=bob_h).json()["data"]["notifications"][0]["id"]
    assert client.patch(f"/api/notifications/{note_id}/read", headers=alice_h).status_code == 404
    assert client.patch(f"/api/notifications/{note_id}/read", headers=bob_h).status_code == 200
    assert client.get("/api/notifications/unread-count", headers=bob_h).json()["data"]["unreadCount"] == 0
    assert client.patch("/api/notifications/mark-all-read", headers=bob_h).json()["data"]["updated"] == 0
    assert client.delete(f"/api/notifications/{note_id}", headers=bob_h).status_code == 200


# ─────────────────────────── Users ───────────────────────────────────────────


def test_search_requires_two_characters(client, register):
    _, headers = register("alice")
    resp = client.get("/api/users/search/a", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Search query must be at least 2 characters"


def test_search_excludes_caller_and_orders_by_followers(client, register):
    _, alice_h = register("alice")
    bob, bob_h = register("bob_al")
    register("al_carol")
    client.post(f"/api/users/{bob['id']}/follow", headers=alice_h)

    users = client.get("/api/users/search/al", headers=alice_h).json()["data"]["users"]
    assert [u["username"] for u in users] == ["bob_al", "al_carol"]
    assert users[0]["isFollowing"] is True


def test_profile_update_and_picture(client, register, png_bytes, s3):
    _, headers = register("alice")
    register("bob")

    taken = client.put("/api/users/profile", headers=headers, json={"username": "bob"})
    assert taken.status_code == 409

    updated = client.put("/api/users/profile", headers=headers, json={"bio": "hello there"})
    assert updated.json()["data"]["user"]["bio"] == "hello there"

    first = client.post(
        "/api/users/profile/picture", headers=headers, files={"image": ("me.png", png_bytes, "image/png")}
    ).json()["data"]["profilePicture"]
    second = client.post(
        "/api/users/profile/picture", headers=headers, files={"image": ("me.png", png_bytes, "image/png")}
    ).json()["data"]["profilePicture"]
    assert first != second
    s3.delete_object.assert_called_once()


def test_following_feed(client, register, png_bytes):
    _, alice_h = register("alice")
    bob, bob_h = register("bob")
    _, carol_h = register("carol")
    _post_image(client, carol_h, png_bytes, "carol's")

    empty = client.get("/api/users/feed/following", headers=alice_h).json()["data"]
    assert empty["posts"] == []

    client.post(f"/api/users/{bob['id']}/follow", headers=alice_h)
    _post_image(client, bob_h, png_bytes, "bob's")
    feed = client.get("/api/users/feed/following", headers=alice_h).json()["data"]
    assert [p["caption"] for p in feed["posts"]] == ["bob's"]


# ─────────────────────────── Rate limiting ───────────────────────────────────


def test_rate_limit_exceeded(client):
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[501, True])
    redis = MagicMock()
    redis.pipeline.return_value = pipe
    client.app.state.rate_limiter = RateLimiter(redis, window_seconds=900, max_requests=500)

    resp = client.get("/api/posts")
    assert resp.status_code == 429
    assert resp.json()["success"] is False
    # Health stays outside the limiter
    assert client.get("/health").status_code == 200
