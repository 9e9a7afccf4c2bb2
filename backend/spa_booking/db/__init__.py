# Database package initialization
# Engine/session management and the SQLAlchemy models
