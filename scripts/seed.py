"""Database seeder for local development."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta

from forum.database import engine, async_session, Base
from forum.models import User, Post, Vote, Comment
from forum.schemas import CATEGORIES
from forum.services.user_service import hash_password
from forum.services.vote_service import upvote_percentage

DEFAULT_PASSWORD = "password"


async def seed(small: bool = False):
    num_users = 10 if small else 50
    num_posts = 100 if small else 2000
    max_comments_per_post = 2 if small else 5

    print(f"Seeding: {num_users} users, {num_posts} posts")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        # One hash for everyone; bcrypt is slow.
        password_hash = hash_password(DEFAULT_PASSWORD)
        users = []
        for i in range(num_users):
            user = User(username=f"user_{i:04d}", password_hash=password_hash)
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users (password: {DEFAULT_PASSWORD!r})")

        total_votes = 0
        total_comments = 0
        for i in range(num_posts):
            author = random.choice(users)
            created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365))
            is_link = random.random() < 0.3
            post = Post(
                title=f"Post {i} about {random.choice(CATEGORIES)}",
                type="link" if is_link else "text",
                category=random.choice(CATEGORIES),
                text=None if is_link else f"This is the body of post {i}. " * 5,
                url=f"https://example.com/posts/{i}" if is_link else None,
                views=random.randint(1, 5000),
                created_at=created,
                author_id=author.id,
            )

            # The author's own upvote first, then a random crowd.
            voters = [author] + random.sample(
                [u for u in users if u is not author], k=random.randint(0, min(10, num_users - 1))
            )
            for index, voter in enumerate(voters):
                post.votes.append(Vote(user_id=voter.id, vote=1 if index == 0 else random.choice((1, -1))))
            post.score = sum(v.vote for v in post.votes)
            post.upvote_percentage = upvote_percentage(post.score, len(post.votes))
            total_votes += len(post.votes)

            for _ in range(random.randint(0, max_comments_per_post)):
                commenter = random.choice(users)
                post.comments.append(
                    Comment(body=f"Comment by {commenter.username}.", author_id=commenter.id)
                )
                total_comments += 1

            session.add(post)
            if i % 500 == 499:
                await session.flush()
                print(f"  {i + 1} posts created")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users}")
    print(f"  Posts: {num_posts}")
    print(f"  Votes: {total_votes}")
    print(f"  Comments: {total_comments}")


def main():
    parser = argparse.ArgumentParser(description="Seed the forum database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 posts)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
