from coursework.core.config import UPLOAD_DIR, UPLOAD_URL_PREFIX
from coursework.db.session import SessionLocal
from coursework.services.blob_store import BlobStore, LocalBlobStore


# every request that needs DB will get a fresh session, and it will always close.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_blob_store() -> BlobStore:
    return LocalBlobStore(UPLOAD_DIR, UPLOAD_URL_PREFIX)
