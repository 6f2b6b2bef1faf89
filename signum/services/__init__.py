"""Business services. Services own transactions; blueprints never touch db.session."""
