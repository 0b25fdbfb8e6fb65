from passlib.context import CryptContext
from sqlalchemy.orm import Session

from golfapp.infrastructure.db.models import User

# pbkdf2_sha256 has no native deps; bcrypt kept for hashes imported from the old stack
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated=["bcrypt"])

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)

def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email.strip().lower()).first()
