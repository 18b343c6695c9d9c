"""Seed the numbered course catalog.

Creates courses 1..COURSE_COUNT that do not exist yet. Existing rows are left
alone unless ``--reset-content`` is passed, in which case their storage
location is rewritten to the default layout.

Usage:
    python scripts/seeding/seed_courses.py --bucket courses
"""

import argparse
import asyncio
import os
import sys

# Add backend root to path so we can import modules
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from libs.common.config import get_settings
from libs.db.config import AsyncSessionLocal
from services.approvals_service.models import Course
from sqlalchemy.future import select


def content_path(course_id: int) -> str:
    return f"lessons/{course_id:02d}/index.html"


async def seed_courses(bucket: str, reset_content: bool = False) -> None:
    settings = get_settings()
    wanted = range(1, settings.COURSE_COUNT + 1)

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(Course).where(Course.id.in_(list(wanted))))
        existing = {course.id: course for course in result.scalars().all()}

        created = 0
        updated = 0
        for course_id in wanted:
            course = existing.get(course_id)
            if course is None:
                session.add(
                    Course(
                        id=course_id,
                        title_zh=f"第{course_id}课",
                        title_en=f"Lesson {course_id}",
                        content_bucket=bucket,
                        content_path=content_path(course_id),
                        published=True,
                    )
                )
                created += 1
            elif reset_content:
                course.content_bucket = bucket
                course.content_path = content_path(course_id)
                updated += 1

        await session.commit()

    print(f"✅ Courses seeded: {created} created, {updated} updated, "
          f"{len(existing) - updated} untouched")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the course catalog")
    parser.add_argument("--bucket", default="courses", help="Storage bucket for lesson content")
    parser.add_argument(
        "--reset-content",
        action="store_true",
        help="Rewrite bucket/path of courses that already exist",
    )
    args = parser.parse_args()
    asyncio.run(seed_courses(args.bucket, args.reset_content))


if __name__ == "__main__":
    main()
