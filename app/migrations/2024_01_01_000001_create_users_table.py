from pypeweb.database import Migration


class CreateUsersTable(Migration):
    def up(self, schema):
        def columns(table):
            table.id()
            table.string("name")
            table.string("email").unique()
            table.string("password")
            table.timestamps()

        schema.create_table("users", columns)

    def down(self, schema):
        schema.drop_table("users")
