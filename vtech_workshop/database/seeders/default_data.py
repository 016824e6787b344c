from ...utils.auth import hash_password


def seed(conn):
    # if no users exist, create admin/admin and a demo staff login
    row = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()
    if row and row["n"] == 0:
        conn.execute("""
            INSERT INTO users(username, password_hash, full_name, email, role, is_active)
            VALUES (?, ?, ?, ?, ?, 1)
        """, ("admin", hash_password("admin"), "Administrator", "admin@example.com", "admin"))
        conn.execute("""
            INSERT INTO users(username, password_hash, full_name, email, role, is_active)
            VALUES (?, ?, ?, ?, ?, 1)
        """, ("staff", hash_password("staff"), "Workshop Staff", "staff@example.com", "staff"))

    # expense categories are free-form, but the shop always needs these
    row = conn.execute("SELECT COUNT(*) AS n FROM expense_categories").fetchone()
    if row and row["n"] == 0:
        conn.executemany(
            "INSERT INTO expense_categories(name) VALUES (?)",
            [("Rent",), ("Electricity",), ("Tools",), ("Transport",), ("Misc",)],
        )
    conn.commit()
