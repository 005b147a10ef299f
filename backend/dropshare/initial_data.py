import logging
import os

from dropshare.db.base import Base
from dropshare.db.session import SessionLocal, engine
from dropshare import crud, schemas

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def init() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user = crud.user.get_by_username(db, username="admin")
        if not user:
            user_in = schemas.UserCreate(
                username="admin",
                email=os.getenv("FIRST_ADMIN_EMAIL", "admin@example.com"),
                password=os.getenv("FIRST_ADMIN_PASSWORD", "adminpassword"),  # Change this in production!
            )
            crud.user.create(db, obj_in=user_in, is_admin=True)
            logger.info("Admin user created")
        else:
            logger.info("Admin user already exists")
    finally:
        db.close()

if __name__ == "__main__":
    logger.info("Creating initial data")
    init()
    logger.info("Initial data created")
