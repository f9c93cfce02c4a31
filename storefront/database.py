"""Database configuration and initialization."""
from sqlalchemy import create_engine, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = scoped_session(sessionmaker(autocommit=False, autoflush=False))


def _engine_options(database_uri: str, echo: bool) -> dict:
    """Pool settings per backend; in-memory SQLite must share one connection."""
    if database_uri.startswith('sqlite'):
        return {
            'echo': echo,
            'connect_args': {'check_same_thread': False},
            'poolclass': StaticPool,
        }
    return {
        'echo': echo,
        'pool_pre_ping': True,  # Enable connection health checks
        'pool_size': 10,
        'max_overflow': 20,
    }


def init_db(app):
    """Initialize database connection."""
    global engine

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(
        database_uri,
        **_engine_options(database_uri, app.config.get('SQLALCHEMY_ECHO', False))
    )

    db_session.remove()
    db_session.configure(bind=engine)

    Base.query = db_session.query_property()

    if database_uri.startswith('sqlite'):
        # No migrations for local/test databases
        import storefront.models  # noqa: F401
        Base.metadata.create_all(bind=engine)

    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def get_session():
    """Get database session."""
    return db_session


def get_engine():
    """Get the engine bound by init_db."""
    return engine


# BIGINT primary keys do not autoincrement on SQLite
BigIntegerPK = BigInteger().with_variant(Integer, 'sqlite')
