"""
Demo data: ``pype db seed app.seeders:DatabaseSeeder``.
"""

from pypeweb.database import DatabaseSeeder as BaseSeeder
from pypeweb.database import Seeder
from pypeweb.security import hash_password

DEMO_PASSWORD = "password123"


class UserSeeder(Seeder):
    def run(self, db):
        self.insert("users", [
            {"name": "John Doe", "email": "john@example.com", "password": hash_password(DEMO_PASSWORD)},
            {"name": "Jane Doe", "email": "jane@example.com", "password": hash_password(DEMO_PASSWORD)},
        ])


class PostSeeder(Seeder):
    def run(self, db):
        author = self.table("users").where("email", "john@example.com").first()
        self.factory(
            "posts",
            12,
            lambda n: {
                "user_id": author["id"] if author else None,
                "title": f"Sample post {n + 1}",
                "slug": f"sample-post-{n + 1}",
                "body": f"<p>This is sample post number {n + 1}.</p>",
            },
        )


class DatabaseSeeder(BaseSeeder):
    seeders = (UserSeeder, PostSeeder)
