# Overview: Flask extension instances shared by the ledger models, services and CLI.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
