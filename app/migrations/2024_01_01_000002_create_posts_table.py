from pypeweb.database import Migration


class CreatePostsTable(Migration):
    def up(self, schema):
        def columns(table):
            table.id()
            table.foreign_id("user_id").nullable()
            table.string("title")
            table.string("slug")
            table.text("body")
            table.boolean("published").default(True)
            table.timestamps()

        schema.create_table("posts", columns)

    def down(self, schema):
        schema.drop_table("posts")
