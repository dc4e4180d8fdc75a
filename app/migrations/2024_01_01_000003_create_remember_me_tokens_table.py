from pypeweb.database import Migration


class CreateRememberMeTokensTable(Migration):
    def up(self, schema):
        def columns(table):
            table.id()
            table.foreign_id("user_id")
            table.string("token", 64).unique()
            table.datetime("expires_at")
            table.timestamp("created_at")

        schema.create_table("remember_me_tokens", columns)

    def down(self, schema):
        schema.drop_table("remember_me_tokens")
