# -*- coding: utf-8 -*-
from flask_sqlalchemy import SQLAlchemy

# global SQLAlchemy() instance, bound in factory.create_app
db = SQLAlchemy()

__all__ = ["db"]
