from flask_sqlalchemy import SQLAlchemy

# global SQLAlchemy() instance, bound in create_app()
db = SQLAlchemy()
