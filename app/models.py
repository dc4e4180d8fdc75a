"""
Models for the demo blog.
"""

from pypeweb import Model


class User(Model):
    table = "users"

    @classmethod
    def schema(cls, table):
        table.id()
        table.string("name")
        table.string("email").unique()
        table.string("password")
        table.timestamps()


class Post(Model):
    table = "posts"

    @classmethod
    def schema(cls, table):
        table.id()
        table.foreign_id("user_id").nullable()
        table.string("title")
        table.string("slug")
        table.text("body")
        table.boolean("published").default(True)
        table.timestamps()
