# Overview: Flask extension instances for the database session and schema migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Created unbound; create_app() binds them to an application (and its engine).
db = SQLAlchemy()
migrate = Migrate()
