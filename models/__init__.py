from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from .plant import Plant
from .published_totals import PublishedTotals
