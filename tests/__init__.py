import os

# Keep test imports off the production Postgres URL.
os.environ.setdefault('DATABASE_URL', 'sqlite://')
