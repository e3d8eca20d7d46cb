"""Database configuration and initialization."""
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def _engine_options(database_uri: str, echo: bool) -> dict:
    """Pool options per backend."""
    if database_uri.startswith('sqlite'):
        options = {'echo': echo, 'connect_args': {'check_same_thread': False}}
        # In-memory SQLite only lives as long as its single connection
        if database_uri in ('sqlite://', 'sqlite:///:memory:'):
            options['poolclass'] = StaticPool
        return options
    return {
        'echo': echo,
        'pool_pre_ping': True,  # Enable connection health checks
        'pool_size': 10,
        'max_overflow': 20,
    }


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(
        database_uri,
        **_engine_options(database_uri, app.config.get('SQLALCHEMY_ECHO', False))
    )

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_schema():
    """Create all tables for the registered models."""
    # Import models so they are registered on Base.metadata
    import fulfillment.models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def drop_schema():
    """Drop all tables (tests and local resets only)."""
    import fulfillment.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session
