"""Database seeder for local development of the SkillShare API."""
import asyncio
import argparse
import random
import time
from sqlalchemy import select
from app.database import engine, async_session, Base
from app.models import User, Follow, Post, Like, Comment
from app.realtime import live_updates
from app.services.insights_service import PostInsightsService
from app.services.user_service import hash_password

SKILLS = ["baking", "woodworking", "python", "guitar", "photography", "knitting",
          "pottery", "calligraphy", "gardening", "welding", "drawing", "chess"]

async def seed(small: bool = False):
    num_users = 10 if small else 200
    num_posts = 30 if small else 2000
    max_follows = 3 if small else 25

    print(f"Seeding: {num_users} users, {num_posts} posts")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # One hash for everybody: bcrypt is deliberately slow.
    password_hash = hash_password("password")

    async with async_session() as session:
        users = []
        for i in range(num_users):
            user = User(
                username=f"maker_{i:04d}",
                email=f"maker_{i:04d}@example.com",
                password_hash=password_hash,
                full_name=f"Maker {i}",
                bio=f"I share what I know about {random.choice(SKILLS)}.",
                specializations=random.sample(SKILLS, k=random.randint(1, 3)),
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users")

        follows = 0
        for user in users:
            others = [u for u in users if u.id != user.id]
            for target in random.sample(others, k=random.randint(0, min(max_follows, len(others)))):
                session.add(Follow(follower_id=user.id, followed_id=target.id))
                follows += 1
        await session.flush()
        print(f"  Created {follows} follows")

        for i in range(num_posts):
            skill = random.choice(SKILLS)
            post = Post(
                title=f"Post {i}: getting started with {skill}",
                content=f"Here is how I learned {skill}. " * 10,
                user_id=random.choice(users).id,
            )
            session.add(post)
        await session.flush()

        post_ids = (await session.execute(select(Post.id))).scalars().all()
        for post_id in post_ids:
            for fan in random.sample(users, k=random.randint(0, min(10, len(users)))):
                session.add(Like(post_id=post_id, user_id=fan.id))
            for _ in range(random.randint(0, 4)):
                session.add(Comment(
                    post_id=post_id,
                    user_id=random.choice(users).id,
                    content="Thanks, this helped a lot!",
                ))
        await session.commit()
        print(f"  Created {len(post_ids)} posts with likes and comments")

    # Reconcile every post so insights start out matching the seeded rows.
    insights = PostInsightsService(async_session, live_updates)
    for post_id in post_ids:
        await insights.sync_insights(post_id)

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Seed the SkillShare database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (30 posts)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
