#!/usr/bin/env python3
"""
Seed script — fills a running Community API with a small, realistic dataset.

Creates:
  • 8 users (password "Passw0rd1")
  • A follow graph (each user follows 3 others)
  • 3 posts per user, each with a generated image
  • Comments, a few replies, and likes on posts and comments

Run once the API is up:
  python scripts/seed_data.py --api-url http://localhost:8000

Talks to the API over HTTP only, so everything goes through the same
validation, counters and notification fan-out as a real client.
"""
import argparse
import random
import time
from dataclasses import dataclass, field
from io import BytesIO
from typing import Optional

import httpx
from PIL import Image

PASSWORD = "Passw0rd1"

BASE_USERS = [
    ("alice", "Coffee, film cameras and long walks."),
    ("bob", "Weekend climber. Weekday engineer."),
    ("carol", "Plants everywhere."),
    ("dave_designs", "Type nerd."),
    ("eve", "Running on espresso."),
    ("frank", "Trying every noodle shop in town."),
    ("grace", "Maps, trains, sunsets."),
    ("henry", "Dog dad."),
]

SAMPLE_CAPTIONS = [
    "Golden hour never gets old.",
    "New plant, who dis?",
    "Sunday morning pancakes.",
    "Found this tiny bookshop today.",
    "Summit reached!",
    "Rainy day sketches.",
    "First attempt at sourdough.",
    "The view from the 6:40 train.",
    "Finally framed these prints.",
    "Beach cleanup crew, great turnout.",
]

SAMPLE_COMMENTS = [
    "Love this!",
    "Where is this?",
    "So good",
    "Need the recipe please",
    "Wow, the colours",
    "Take me with you next time",
]

COLOURS = [(231, 76, 60), (46, 204, 113), (52, 152, 219), (241, 196, 15), (155, 89, 182)]


@dataclass
class SeedUser:
    username: str
    id: str
    token: str
    post_ids: list[str] = field(default_factory=list)


def make_image(colour: tuple[int, int, int]) -> bytes:
    image = Image.new("RGB", (640, 480), colour)
    out = BytesIO()
    image.save(out, format="JPEG", quality=80)
    return out.getvalue()


class ApiClient:
    def __init__(self, base_url: str) -> None:
        self.http = httpx.Client(base_url=base_url, timeout=10.0)

    def call(self, method: str, path: str, token: Optional[str] = None, **kwargs) -> Optional[dict]:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            resp = self.http.request(method, f"/api{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            print(f"  ✗ {method} {path}: {exc}")
            return None
        if resp.is_error:
            print(f"  HTTP {resp.status_code} on {method} {path}: {resp.text}")
            return None
        return resp.json().get("data") or {}

    def close(self) -> None:
        self.http.close()


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.http.base_url} ...")
    for _ in range(retries):
        try:
            if client.http.get("/health").json().get("status") == "ok":
                print("  API is ready!\n")
                return
        except httpx.HTTPError:
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.http.base_url} after {retries} retries")


def signup(client: ApiClient, username: str, bio: str) -> Optional[SeedUser]:
    email = f"{username}@community.dev"
    data = client.call(
        "POST", "/auth/register", json={"username": username, "email": email, "password": PASSWORD}
    )
    if data is None:
        # Already registered on a previous run
        data = client.call("POST", "/auth/login", json={"emailOrUsername": username, "password": PASSWORD})
    if not data:
        return None
    user = SeedUser(username=username, id=data["user"]["id"], token=data["accessToken"])
    client.call("PUT", "/users/profile", token=user.token, json={"bio": bio})
    return user


def main(api_url: str) -> None:
    client = ApiClient(api_url)
    wait_for_api(client)

    # ── Create users ─────────────────────────────────────────────────────
    print("Creating users...")
    users: list[SeedUser] = []
    for username, bio in BASE_USERS:
        user = signup(client, username, bio)
        if user:
            users.append(user)
            print(f"  ✓ {username} ({user.id})")
        else:
            print(f"  ✗ Failed to create {username}")

    if len(users) < 2:
        print("Not enough users created — aborting")
        return

    # ── Create follow graph ───────────────────────────────────────────────
    print("\nCreating follow relationships...")
    follows = 0
    for user in users:
        others = [u for u in users if u.id != user.id]
        for target in random.sample(others, k=min(3, len(others))):
            if client.call("POST", f"/users/{target.id}/follow", token=user.token) is not None:
                follows += 1
    print(f"  ✓ {follows} follows created")

    # ── Create posts ──────────────────────────────────────────────────────
    print("\nCreating posts...")
    captions = SAMPLE_CAPTIONS * 3
    random.shuffle(captions)
    for idx, user in enumerate(users):
        for n in range(3):
            files = {"image": ("seed.jpg", make_image(random.choice(COLOURS)), "image/jpeg")}
            data = client.call(
                "POST",
                "/posts",
                token=user.token,
                files=files,
                data={"caption": captions[(idx * 3 + n) % len(captions)]},
            )
            if data:
                user.post_ids.append(data["post"]["id"])
    post_ids = [(u, pid) for u in users for pid in u.post_ids]
    print(f"  ✓ {len(post_ids)} posts created")

    # ── Comments and replies ──────────────────────────────────────────────
    print("\nAdding comments...")
    comments = replies = 0
    for owner, post_id in post_ids:
        for commenter in random.sample(users, k=random.randint(0, 3)):
            data = client.call(
                "POST",
                f"/comments/post/{post_id}",
                token=commenter.token,
                json={"text": random.choice(SAMPLE_COMMENTS)},
            )
            if not data:
                continue
            comments += 1
            if random.random() < 0.4:
                reply = client.call(
                    "POST",
                    f"/comments/post/{post_id}",
                    token=owner.token,
                    json={"text": "Thank you!", "parentCommentId": data["comment"]["id"]},
                )
                replies += reply is not None
    print(f"  ✓ {comments} comments, {replies} replies added")

    # ── Likes ─────────────────────────────────────────────────────────────
    print("\nAdding likes...")
    likes = 0
    for _, post_id in post_ids:
        for liker in random.sample(users, k=random.randint(0, 5)):
            if client.call("POST", f"/likes/post/{post_id}", token=liker.token) is not None:
                likes += 1
    print(f"  ✓ {likes} likes added")

    # ── Print summary ─────────────────────────────────────────────────────
    first = users[0]
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    print(f"# Log in as '{first.username}':")
    print(f"  curl -s -X POST '{api_url}/api/auth/login' \\")
    print("    -H 'Content-Type: application/json' \\")
    print(f"    -d '{{\"emailOrUsername\": \"{first.username}\", \"password\": \"{PASSWORD}\"}}'\n")
    print(f"# Following feed for '{first.username}':")
    print(f"  curl -s '{api_url}/api/users/feed/following' -H 'Authorization: Bearer {first.token}'\n")
    print(f"# Notifications for '{first.username}':")
    print(f"  curl -s '{api_url}/api/notifications' -H 'Authorization: Bearer {first.token}'\n")
    print("# Check Jaeger traces: http://localhost:16686")
    print("# Check Prometheus: http://localhost:9090")
    print("# Check MinIO: http://localhost:9001 (minioadmin/minioadmin)")
    print("=" * 60)
    client.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the Community API")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    args = parser.parse_args()
    main(args.api_url)
